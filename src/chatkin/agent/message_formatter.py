"""
Builds the backend-ready transcript from history, summary and the current message.

Image attachments are read from the object store and inlined as base64 image blocks next to the
turn's text.  Other attachments stay referenced by the text only.  An attachment that cannot be read
fails the request; a transcript is never sent with some images silently missing.
"""

import asyncio
import base64
import logging
from typing import (
    Iterable,
    List,
    Sequence,
)

from chatkin.config import settings
from chatkin.core.errors import AttachmentUnresolvedError
from chatkin.core.schema import (
    ContentBlock,
    ConversationTurn,
    FileRef,
    ImageBlock,
    ImageSource,
    Role,
    TextBlock,
    TranscriptMessage,
)
from chatkin.storage.object_store import (
    ObjectStore,
    ObjectStoreError,
    parse_attachment_url,
)

logger = logging.getLogger(__name__)

SUPPORTED_IMAGE_TYPES = ("image/jpeg", "image/png", "image/gif", "image/webp")

# Stands in for a turn saved without text; the backend rejects empty content
EMPTY_TURN_TEXT = "(no message text)"


def normalise_media_type(content_type: str | None) -> str:
    """Map a content type onto one the backend accepts, defaulting to JPEG."""
    base = (content_type or "").split(";")[0].strip().lower()
    if base in SUPPORTED_IMAGE_TYPES:
        return base
    logger.debug("Unknown image content type %r, defaulting to JPEG", content_type)
    return "image/jpeg"


class MessageFormatter:
    """Turns conversation state into an ordered list of TranscriptMessages."""

    def __init__(
        self,
        object_store: ObjectStore,
        history_window: int | None = None,
        temp_path: str | None = None,
    ) -> None:
        self.object_store = object_store
        self.history_window = settings.HISTORY_WINDOW if history_window is None else history_window
        self.temp_path = temp_path or settings.TEMP_FILES_PATH

    async def format(
        self,
        current_message: str,
        current_attachments: Sequence[FileRef] | None = None,
        history: Sequence[ConversationTurn] | None = None,
        summary: str | None = None,
    ) -> List[TranscriptMessage]:
        """
        Assemble the transcript for one request.

        Order is: optional summary turn, the most recent ``history_window`` history turns (minus
        any leading assistant turns), then the current user message.
        A turn saved without text or images is kept with a placeholder text.

        Raises
        ------
        InputError
            If any image attachment URL cannot be parsed.
        AttachmentUnresolvedError
            If an image attachment cannot be read from the object store.
        """
        current_attachments = list(current_attachments or [])
        recent = list(history or [])
        recent = recent[-self.history_window :] if self.history_window > 0 else []

        # Reject bad references before any storage read
        self._check_urls(current_attachments)
        for turn in recent:
            self._check_urls(turn.attachments)

        messages: List[TranscriptMessage] = []
        if summary:
            messages.append(
                TranscriptMessage(
                    role=Role.USER, content=f"[Previous conversation summary: {summary}]"
                )
            )

        for turn in recent:
            # Some backends reject transcripts that open with the assistant
            if not messages and turn.role is Role.ASSISTANT:
                logger.debug("Skipping leading assistant turn")
                continue
            messages.append(await self._format_turn(turn.role, turn.text, turn.attachments))

        messages.append(await self._format_turn(Role.USER, current_message, current_attachments))

        logger.debug(
            "Formatted transcript: %d messages (summary=%s, history=%d)",
            len(messages),
            bool(summary),
            len(recent),
        )
        return messages

    def _check_urls(self, attachments: Iterable[FileRef]) -> None:
        for attachment in attachments:
            if attachment.is_image:
                parse_attachment_url(attachment.url, self.temp_path)

    async def _format_turn(
        self, role: Role, text: str, attachments: Sequence[FileRef]
    ) -> TranscriptMessage:
        images = [attachment for attachment in attachments if attachment.is_image]
        if not images:
            return TranscriptMessage(role=role, content=text or EMPTY_TURN_TEXT)

        logger.debug("Inlining %d image(s) of %d attachment(s)", len(images), len(attachments))
        image_blocks = await asyncio.gather(*(self._resolve_image(image) for image in images))

        content: List[ContentBlock] = []
        if text:
            content.append(TextBlock(text=text))
        content.extend(image_blocks)
        return TranscriptMessage(role=role, content=content)

    async def _resolve_image(self, attachment: FileRef) -> ImageBlock:
        bucket, key = parse_attachment_url(attachment.url, self.temp_path)
        try:
            stored = await self.object_store.get(bucket, key)
        except ObjectStoreError as exc:
            logger.error("Failed to read attachment %s: %s", attachment.url, exc)
            raise AttachmentUnresolvedError(attachment.url, str(exc)) from exc

        if stored is None:
            logger.warning("Attachment not found in %s bucket: %s", bucket.value, key)
            raise AttachmentUnresolvedError(attachment.url)

        reported = stored.content_type or ""
        media_type = normalise_media_type(
            reported if reported.lower().startswith("image/") else attachment.mime_type
        )
        data = base64.b64encode(stored.data).decode("ascii")
        return ImageBlock(source=ImageSource(media_type=media_type, data=data))
