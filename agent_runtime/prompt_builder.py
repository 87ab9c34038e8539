"""
System instruction assembly.

Combines, in this order and separated by a blank line:
- the persona envelope (when requested and a persona was supplied),
- the caller's explicit instruction (when non-empty),
- the free-text conversation context (when present and requested).

Absent inputs simply shrink the result, down to an empty string.
"""

from __future__ import annotations

from typing import List, Optional

from .models import Persona


class SystemInstructionBuilder:
    def __init__(self, include_persona_default: bool = True, include_context_default: bool = True) -> None:
        self.include_persona_default = include_persona_default
        self.include_context_default = include_context_default

    def build(
        self,
        explicit_instruction: Optional[str] = None,
        include_persona: Optional[bool] = None,
        include_context: Optional[bool] = None,
        persona: Optional[Persona] = None,
        context_text: Optional[str] = None,
    ) -> str:
        should_include_persona = self.include_persona_default if include_persona is None else include_persona
        should_include_context = self.include_context_default if include_context is None else include_context

        parts: List[str] = []
        if should_include_persona and persona is not None:
            parts.append(self.build_persona(persona))
        if explicit_instruction:
            parts.append(f"<instructions>\n{explicit_instruction}\n</instructions>")
        if context_text and should_include_context:
            parts.append(f"<context>\n{context_text}\n</context>")
        return "\n\n".join(parts)

    @staticmethod
    def build_persona(persona: Persona) -> str:
        parts: List[str] = []
        if persona.name:
            parts.append(f"<name>{persona.name}</name>")
        if persona.business_context:
            parts.append(f"<business_context>\n{persona.business_context}\n</business_context>")
        if persona.tone_of_voice:
            parts.append(f"<tone_of_voice>\n{persona.tone_of_voice}\n</tone_of_voice>")

        body = "\n\n".join(parts)
        return f"<persona>\n{body}\n</persona>" if parts else "<persona>\n</persona>"
