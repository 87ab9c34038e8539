from agent_runtime.models import Persona
from agent_runtime.prompt_builder import SystemInstructionBuilder


def test_full_instruction_orders_persona_instructions_context():
    builder = SystemInstructionBuilder()
    persona = Persona(name="Zoe", business_context="Bank", tone_of_voice="Friendly")

    text = builder.build("Be brief.", persona=persona, context_text="User is premium")

    assert text == (
        "<persona>\n"
        "<name>Zoe</name>\n\n"
        "<business_context>\nBank\n</business_context>\n\n"
        "<tone_of_voice>\nFriendly\n</tone_of_voice>\n"
        "</persona>\n\n"
        "<instructions>\nBe brief.\n</instructions>\n\n"
        "<context>\nUser is premium\n</context>"
    )


def test_absent_inputs_shrink_to_empty_string():
    builder = SystemInstructionBuilder()
    assert builder.build() == ""
    assert builder.build("") == ""


def test_per_call_flags_override_builder_defaults():
    persona = Persona(name="Zoe")
    builder = SystemInstructionBuilder(include_persona_default=False, include_context_default=False)

    assert builder.build("Hi", persona=persona, context_text="ctx") == "<instructions>\nHi\n</instructions>"
    assert builder.build("Hi", include_persona=True, persona=persona).startswith("<persona>\n<name>Zoe</name>")
    assert builder.build(include_context=True, context_text="ctx") == "<context>\nctx\n</context>"


def test_explicit_false_drops_persona_even_when_default_is_on():
    builder = SystemInstructionBuilder()
    text = builder.build("Hi", include_persona=False, persona=Persona(name="Zoe"))
    assert "<persona>" not in text


def test_empty_persona_renders_empty_envelope():
    assert SystemInstructionBuilder.build_persona(Persona()) == "<persona>\n</persona>"
