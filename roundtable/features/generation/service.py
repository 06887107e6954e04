"""Newsletter generation.

Collects (question, response) pairs, wraps them in the newsletter owner's
instruction and asks the text generator for one narrative summary.
Generation failures never propagate: callers get a user-facing apology.
"""

import logging
from typing import Iterable, List, NamedTuple, Optional, Sequence, Tuple

from sqlalchemy import select, update

from roundtable.core.database import Database, newsletters, questions, sessions
from roundtable.core.errors import NotFoundError, ValidationError
from roundtable.features.access.service import require_access
from roundtable.features.generation.prompts import (
    DEFAULT_INSTRUCTION,
    EDITOR_PREAMBLE,
    GENERATION_FAILED_MESSAGE,
    RESPONSE_SEPARATOR,
    UNKNOWN_QUESTION,
)
from roundtable.features.generation.provider import TextGenerator
from roundtable.features.sessions.service import get_session, get_session_responses
from roundtable.models.newsletter import AccessMode

logger = logging.getLogger("roundtable.generation")


class ResponseInput(NamedTuple):
    question_id: str
    response: str


def build_prompt(custom_prompt: Optional[str], pairs: Iterable[Tuple[str, str]]) -> str:
    instruction = custom_prompt.strip() if custom_prompt and custom_prompt.strip() else DEFAULT_INSTRUCTION
    blocks = RESPONSE_SEPARATOR.join(f"Question: {question}\nResponse: {response}" for question, response in pairs)
    return (
        f"{EDITOR_PREAMBLE}\n\n"
        f"The owner of this newsletter has specified the following instructions: {instruction}\n\n"
        f"Here are the questions and responses:\n{blocks}"
    )


def _custom_prompt(db: Database, newsletter_id: str) -> Optional[str]:
    with db.session() as session:
        row = session.execute(select(newsletters.c.prompt).where(newsletters.c.id == newsletter_id)).first()
    return row.prompt if row else None


def _question_texts(db: Database, newsletter_id: str, question_ids: Sequence[str]) -> dict:
    """Texts of the newsletter's own questions; ids from elsewhere are left out."""
    if not question_ids:
        return {}
    with db.session() as session:
        rows = session.execute(
            select(questions.c.id, questions.c.text).where(
                questions.c.newsletter_id == newsletter_id,
                questions.c.id.in_(set(question_ids)),
            )
        ).all()
    return {row.id: row.text for row in rows}


def generate_newsletter(
    db: Database,
    generator: TextGenerator,
    newsletter_id: str,
    responses: Sequence[ResponseInput],
) -> str:
    """One generator call for all responses; returns the apology text on any failure."""
    texts = _question_texts(db, newsletter_id, [r.question_id for r in responses])
    pairs: List[Tuple[str, str]] = [(texts.get(r.question_id, UNKNOWN_QUESTION), r.response) for r in responses]
    prompt = build_prompt(_custom_prompt(db, newsletter_id), pairs)

    try:
        text = generator.generate(prompt)
    except Exception:
        logger.exception("generation.failed", extra={"newsletter_id": newsletter_id, "responses": len(responses)})
        return GENERATION_FAILED_MESSAGE

    if not text or not text.strip():
        logger.error("generation.empty", extra={"newsletter_id": newsletter_id})
        return GENERATION_FAILED_MESSAGE

    logger.info("generation.completed", extra={"newsletter_id": newsletter_id, "responses": len(responses)})
    return text


def generate_session_newsletter(
    db: Database,
    generator: TextGenerator,
    newsletter_id: str,
    session_id: str,
    user_id: str,
) -> str:
    """Generate the summary for a session's responses and store it on the session."""
    target = get_session(db, session_id)
    if not target:
        raise NotFoundError("Session not found")
    if target.newsletter_id != newsletter_id:
        raise ValidationError("Invalid session")
    require_access(db, newsletter_id, user_id, AccessMode.WRITE, "Unauthorized: User cannot generate this newsletter")

    responses = get_session_responses(db, session_id, user_id)
    if not responses:
        raise ValidationError("Invalid request: no responses found to generate a newsletter")

    summary = generate_newsletter(
        db,
        generator,
        newsletter_id,
        [ResponseInput(r.question_id, r.response) for r in responses],
    )

    if summary != GENERATION_FAILED_MESSAGE:
        with db.session() as session:
            session.execute(update(sessions).where(sessions.c.id == session_id).values(generated_newsletter=summary))

    return summary
