"""
referral_kernel.services.comment_log -- Append-only referral annotations.

Responsibility:
    Adds comments to a referral and lists them in insertion order.  Comments
    never affect workflow state.

Invariants enforced:
    - Append-only: CommentModel rejects ORM update/delete.
    - Ordering: each comment takes the next per-referral ``sequence``
      number; UNIQUE(referral_id, sequence) turns a concurrent duplicate
      into an IntegrityError rather than an ambiguous order.

Failure modes:
    - ValidationError on blank text.
    - ReferralNotFoundError on unknown referral id.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select

from referral_kernel.domain.referral import Comment
from referral_kernel.exceptions import ReferralNotFoundError, ValidationError
from referral_kernel.logging_config import get_logger
from referral_kernel.models.referral import CommentModel, ReferralModel
from referral_kernel.services.base import BaseService

logger = get_logger("services.comment_log")


class CommentLogService(BaseService):

    def add_comment(
        self,
        referral_id: UUID,
        author_id: UUID,
        text: str,
        is_internal: bool = True,
    ) -> Comment:
        if text is None or not text.strip():
            raise ValidationError("text", "must not be empty")
        self._require_referral(referral_id)

        last = self.session.execute(
            select(func.max(CommentModel.sequence))
            .where(CommentModel.referral_id == referral_id)
        ).scalar()

        model = CommentModel(
            referral_id=referral_id,
            author_id=author_id,
            text=text.strip(),
            is_internal=is_internal,
            sequence=(last or 0) + 1,
            created_at=self.clock.now(),
        )
        self.session.add(model)
        self.session.flush()

        logger.info(
            "comment_added",
            extra={
                "referral_id": str(referral_id),
                "comment_id": str(model.id),
                "author_id": str(author_id),
                "sequence": model.sequence,
                "is_internal": is_internal,
            },
        )
        return model.to_dto()

    def list_comments(self, referral_id: UUID) -> list[Comment]:
        """Comments in insertion order."""
        self._require_referral(referral_id)
        models = self.session.execute(
            select(CommentModel)
            .where(CommentModel.referral_id == referral_id)
            .order_by(CommentModel.sequence)
        ).scalars().all()
        return [m.to_dto() for m in models]

    def _require_referral(self, referral_id: UUID) -> None:
        exists = self.session.execute(
            select(ReferralModel.id).where(ReferralModel.id == referral_id)
        ).scalar_one_or_none()
        if exists is None:
            raise ReferralNotFoundError(str(referral_id))
