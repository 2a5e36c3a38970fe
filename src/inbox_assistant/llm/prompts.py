"""Prompt templates for AI argument generation.

Templates use Python string placeholders ({variable_name}) for the user's
details, the rule's instructions, and the email being handled.
"""

ARGS_SYSTEM_PROMPT = """You are an AI assistant that helps people manage their emails. \
A rule has already been selected for the email below. Fill in the arguments the rule's \
actions need, following the rule's instructions exactly.

RULES:
- Only fill in the arguments you are asked for.
- Never invent email addresses that do not appear in the email or the instructions.
- Write replies in the user's voice, in plain text, without a subject line or signature.
- Keep generated content concise.
{user_about_section}"""

USER_ABOUT_SECTION = """
ABOUT THE USER (use this to personalize your output):
{user_about}
"""

ARGS_USER_PROMPT = """RULE: {rule_name}

INSTRUCTIONS:
{instructions}

EMAIL:
From: {email_from}
To: {email_to}
Subject: {email_subject}

{email_content}

Call {function_name} with the arguments for this rule."""


def build_args_system_prompt(user_about: str) -> str:
    """Return the argument-generation system prompt for a user."""
    section = USER_ABOUT_SECTION.format(user_about=user_about.strip()) if user_about.strip() else ""
    return ARGS_SYSTEM_PROMPT.format(user_about_section=section)
