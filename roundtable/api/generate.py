"""Newsletter generation API.

POST /api/generate-newsletter with either a session_id (summarize and store
on the session) or an explicit list of question/response pairs.
"""

from fastapi import APIRouter, Depends

from roundtable.core.auth import get_current_user_id
from roundtable.core.database import Database, get_database
from roundtable.features.access.service import require_access
from roundtable.features.generation.prompts import GENERATION_FAILED_MESSAGE
from roundtable.features.generation.provider import TextGenerator, get_text_generator
from roundtable.features.generation.service import (
    ResponseInput,
    generate_newsletter,
    generate_session_newsletter,
)
from roundtable.models.newsletter import AccessMode
from roundtable.models.session import GenerateNewsletterRequest

router = APIRouter(prefix="/api", tags=["generation"])


@router.post("/generate-newsletter")
def generate_newsletter_endpoint(
    body: GenerateNewsletterRequest,
    user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
    generator: TextGenerator = Depends(get_text_generator),
):
    if body.session_id:
        summary = generate_session_newsletter(db, generator, body.newsletter_id, body.session_id, user_id)
    else:
        require_access(db, body.newsletter_id, user_id, AccessMode.WRITE, "Unauthorized: User cannot generate this newsletter")
        summary = generate_newsletter(
            db,
            generator,
            body.newsletter_id,
            [ResponseInput(r.question_id, r.response) for r in body.responses],
        )

    # The apology text is still a 200: the client shows it as-is
    return {"data": {"newsletter": summary, "generated": summary != GENERATION_FAILED_MESSAGE}}
