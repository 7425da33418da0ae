"""Document push action: render a document and upload it to a user's device."""

from __future__ import annotations

from typing import TYPE_CHECKING

from cadence.automation.actions.config import DocumentPushConfig
from cadence.automation.actions.protocol import (
    ActionContext,
    ActionResult,
    Document,
    DocumentDestinationFactory,
    DocumentProducer,
)
from cadence.automation.models import ActionType, DocumentPush
from cadence.core.errors import (
    CadenceError,
    DocumentDestinationUnavailableError,
    TargetResolutionError,
)
from cadence.core.logging import get_logger
from cadence.core.timestamps import generate_id

if TYPE_CHECKING:
    from cadence.storage.protocols import DocumentPushRepository

logger = get_logger(__name__)

# document_type -> (payload field naming the source, default title)
DOCUMENT_SOURCES: dict[str, tuple[str, str]] = {
    "meeting_agenda": ("meeting_id", "Meeting Agenda"),
    "briefing": ("briefing_id", "Morning Briefing"),
}


class DocumentPushAction:
    """
    Produce a document for the event and push it to the target profile.

    Folder precedence: the rule's ``folder_path``, then the destination's
    own default, then ``default_folder``. Every successful upload leaves
    a :class:`DocumentPush` provenance row.
    """

    action_type = ActionType.DOCUMENT_PUSH

    def __init__(
        self,
        producer: DocumentProducer,
        destinations: DocumentDestinationFactory,
        pushes: DocumentPushRepository,
        default_folder: str = "/Cadence",
    ) -> None:
        self._producer = producer
        self._destinations = destinations
        self._pushes = pushes
        self._default_folder = default_folder

    async def execute(self, config: DocumentPushConfig, context: ActionContext) -> ActionResult:
        profile_id = context.payload.get(config.target_user_field)
        if not profile_id:
            raise TargetResolutionError(
                f"No profile ID found in event data field: {config.target_user_field}"
            ).with_context(tenant_id=context.tenant_id, action_type=self.action_type.value)
        profile_id = str(profile_id)

        source_field, default_title = DOCUMENT_SOURCES[config.document_type]
        source_id = context.payload.get(source_field)
        if not source_id:
            raise TargetResolutionError(
                f"No {source_field} in event data"
            ).with_context(tenant_id=context.tenant_id, action_type=self.action_type.value)

        destination = self._destinations.for_profile(context.tenant_id, profile_id)
        if destination is None:
            raise DocumentDestinationUnavailableError(
                "Document destination not connected for this user"
            ).with_context(
                tenant_id=context.tenant_id,
                action_type=self.action_type.value,
                profile_id=profile_id,
            )

        folder = config.folder_path or destination.default_folder or self._default_folder

        try:
            document = await self._producer.produce(
                config.document_type, str(source_id), context.payload
            )
            if config.document_type == "meeting_agenda":
                title = str(context.payload.get("title") or default_title)
            else:
                title = default_title
            document = Document(title=title, content=document.content, content_type=document.content_type)
            document_id = await destination.upload(document, folder)
        except CadenceError:
            raise
        except Exception as e:
            raise DocumentDestinationUnavailableError(
                f"Document push failed: {e}", cause=e
            ).with_context(
                tenant_id=context.tenant_id,
                action_type=self.action_type.value,
                profile_id=profile_id,
            ) from e

        self._pushes.record(
            DocumentPush(
                id=generate_id(),
                tenant_id=context.tenant_id,
                profile_id=profile_id,
                document_id=document_id,
                document_type=config.document_type,
                source_id=str(source_id),
                title=title,
                folder=folder,
            )
        )
        logger.info(
            "action.document_pushed",
            profile_id=profile_id,
            document_type=config.document_type,
            document_id=document_id,
        )
        return ActionResult.ok(
            self.action_type, document_id=document_id, pushed=True, title=title, folder=folder
        )
