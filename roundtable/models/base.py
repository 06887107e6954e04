"""
roundtable/models/base.py
Shared base for partial-update bodies.
"""

from typing import Any, ClassVar, Dict, Tuple

from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError

from roundtable.core.errors import ValidationError


class PatchModel(BaseModel):
    """
    A partial update. Unknown keys are dropped, known ones are coerced to
    their column types, and only the keys the caller actually sent survive.

    Fields listed in NULLABLE may be cleared with an explicit null; any
    other null is rejected.
    """

    model_config = ConfigDict(extra="ignore", use_enum_values=True)

    NULLABLE: ClassVar[Tuple[str, ...]] = ()

    @classmethod
    def parse(cls, updates: Dict[str, Any]) -> Dict[str, Any]:
        try:
            patch = cls.model_validate(updates or {})
        except PydanticValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            )
            raise ValidationError(f"Invalid request: {problems}")

        values = patch.model_dump(exclude_unset=True)
        for field, value in values.items():
            if value is None and field not in cls.NULLABLE:
                raise ValidationError(f"Invalid request: {field} cannot be null")
        if not values:
            raise ValidationError("No valid fields to update")
        return values
