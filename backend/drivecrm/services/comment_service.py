"""Comment Service

Ordered comments on a lead. Every add, edit and delete appends a COMMENT
activity carrying the content (and the previous content on edit/delete).
"""
from typing import List, Optional
import logging

from pymongo import ReturnDocument

from drivecrm.errors import AuthorizationError, NotFoundError, ValidationError
from drivecrm.models.activity import ActivityType
from drivecrm.models.base import utc_now_iso
from drivecrm.models.comment import Comment
from drivecrm.models.user import Permission, UserRole
from drivecrm.services.lead_service import LeadRef
from drivecrm.services.tenant_scope import tenant_filter

logger = logging.getLogger(__name__)

COMMENTS_COLLECTION = "comments"


def clean_content(content: Optional[str]) -> str:
    text = (content or "").strip()
    if not text:
        raise ValidationError("Comment content cannot be empty")
    return text


class CommentService:

    def __init__(self, db, activity_service, lead_service, user_service):
        self.db = db
        self.activity_service = activity_service
        self.lead_service = lead_service
        self.user_service = user_service

    @property
    def comments(self):
        return self.db[COMMENTS_COLLECTION]

    async def list(self, tenant_id: str, ref: LeadRef) -> List[Comment]:
        lead = await self.lead_service.find_by_id(tenant_id, ref)
        cursor = self.comments.find(
            tenant_filter(tenant_id, {"leadId": lead.id}),
            {"_id": 0}
        ).sort("createdAt", -1)
        return [Comment.model_validate(d) for d in await cursor.to_list(length=None)]

    async def _load(self, tenant_id: str, lead_id: str, comment_id: str) -> Comment:
        doc = await self.comments.find_one(
            tenant_filter(tenant_id, {"id": comment_id, "leadId": lead_id}),
            {"_id": 0}
        )
        if not doc:
            raise NotFoundError("Comment not found")
        return Comment.model_validate(doc)

    async def _ensure_can_modify(
        self,
        tenant_id: str,
        actor_id: str,
        comment: Comment,
        permission: Optional[Permission] = None,
    ) -> None:
        """Authors may always change their comments; others need admin or ``permission``."""
        if comment.created_by.id == actor_id:
            return
        actor = await self.user_service.get_member(tenant_id, actor_id)
        if actor.role == UserRole.ADMIN:
            return
        if permission is not None and permission in actor.permissions:
            return
        raise AuthorizationError("You can only modify your own comments")

    async def add(self, tenant_id: str, actor_id: str, ref: LeadRef, content: str) -> Comment:
        text = clean_content(content)
        lead = await self.lead_service.find_by_id(tenant_id, ref)
        author = await self.user_service.snapshot(tenant_id, actor_id)

        comment = Comment(lead_id=lead.id, tenant_id=tenant_id, content=text, created_by=author)
        await self.comments.insert_one(comment.to_document())
        logger.info(f"Comment {comment.id} added to lead {lead.id}")

        await self.activity_service.record(
            ActivityType.COMMENT,
            user_id=actor_id,
            tenant_id=tenant_id,
            lead_id=lead.id,
            details="Added a comment",
            metadata={"commentId": comment.id, "commentContent": text},
        )
        return comment

    async def edit(self, tenant_id: str, actor_id: str, ref: LeadRef, comment_id: str, content: str) -> Comment:
        text = clean_content(content)
        lead = await self.lead_service.find_by_id(tenant_id, ref)
        comment = await self._load(tenant_id, lead.id, comment_id)
        await self._ensure_can_modify(tenant_id, actor_id, comment)

        doc = await self.comments.find_one_and_update(
            tenant_filter(tenant_id, {"id": comment.id, "leadId": lead.id}),
            {"$set": {"content": text, "updatedAt": utc_now_iso()}},
            projection={"_id": 0},
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            raise NotFoundError("Comment not found")
        updated = Comment.model_validate(doc)

        await self.activity_service.record(
            ActivityType.COMMENT,
            user_id=actor_id,
            tenant_id=tenant_id,
            lead_id=lead.id,
            details="Edited a comment",
            metadata={
                "commentId": comment.id,
                "commentContent": text,
                "oldCommentContent": comment.content,
            },
        )
        return updated

    async def remove(self, tenant_id: str, actor_id: str, ref: LeadRef, comment_id: str) -> Comment:
        lead = await self.lead_service.find_by_id(tenant_id, ref)
        comment = await self._load(tenant_id, lead.id, comment_id)
        await self._ensure_can_modify(tenant_id, actor_id, comment, Permission.DELETE_COMMENTS)

        result = await self.comments.delete_one(tenant_filter(tenant_id, {"id": comment.id, "leadId": lead.id}))
        if result.deleted_count == 0:
            raise NotFoundError("Comment not found")
        logger.info(f"Comment {comment.id} deleted from lead {lead.id}")

        await self.activity_service.record(
            ActivityType.COMMENT,
            user_id=actor_id,
            tenant_id=tenant_id,
            lead_id=lead.id,
            details="Deleted a comment",
            metadata={
                "commentId": comment.id,
                "commentContent": comment.content,
                "oldCommentContent": comment.content,
            },
        )
        return comment
