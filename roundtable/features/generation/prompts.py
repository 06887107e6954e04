"""Prompt templates for newsletter generation."""

EDITOR_PREAMBLE = (
    "You are a friendly and engaging newsletter editor. Your task is to create "
    "a summary of the following responses from a group that share a newsletter. "
    "Each response may be to a different question."
)

DEFAULT_INSTRUCTION = (
    "Create a lighthearted, personal summary that highlights interesting or funny "
    "points. Weave the responses into a cohesive narrative rather than just listing them."
)

UNKNOWN_QUESTION = "Unknown Question"

GENERATION_FAILED_MESSAGE = (
    "There was an error generating the newsletter summary. Please try again later."
)

RESPONSE_SEPARATOR = "\n---\n"
