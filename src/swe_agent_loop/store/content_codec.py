from __future__ import annotations

import asyncio
import hashlib
import io
from dataclasses import replace

from loguru import logger
from PIL import Image

from swe_agent_loop.content import IMAGE_FORMATS, ContentBlock, ImageBlock, Message, ToolResultBlock
from swe_agent_loop.store.blob_store import BlobStore


class ContentOffloadCodec:
    """Moves inline image bytes to the blob store and brings them back on demand.

    Rehydrated images are cached per blob reference for the life of the codec,
    which is one per process.
    """

    def __init__(self, blob_store: BlobStore):
        self._blob_store = blob_store
        self._cache: dict[str, tuple[str, bytes]] = {}

    async def offload(self, conversation_id: str, content: list[ContentBlock]) -> list[ContentBlock]:
        return [await self._offload_block(conversation_id, block) for block in content]

    async def rehydrate(self, content: list[ContentBlock]) -> list[ContentBlock]:
        return [await self._rehydrate_block(block) for block in content]

    async def rehydrate_messages(self, messages: list[Message]) -> list[Message]:
        return [Message(role=m.role, content=await self.rehydrate(m.content)) for m in messages]

    async def _offload_block(self, conversation_id: str, block: ContentBlock) -> ContentBlock:
        if isinstance(block, ToolResultBlock):
            nested = [await self._offload_block(conversation_id, b) for b in block.content]
            return replace(block, content=nested)
        if not isinstance(block, ImageBlock) or block.data is None:
            return block
        if block.blob_ref is not None:
            return replace(block, data=None)

        digest = hashlib.sha256(block.data).hexdigest()
        blob_ref = f"{conversation_id}/{digest}.{block.format}"
        await self._blob_store.put(blob_ref, block.data)
        if block.format in IMAGE_FORMATS:
            self._cache[blob_ref] = (block.format, block.data)
        logger.debug(f"Offloaded {len(block.data):,} byte {block.format} image to {blob_ref}")
        return ImageBlock(format=block.format, blob_ref=blob_ref)

    async def _rehydrate_block(self, block: ContentBlock) -> ContentBlock:
        if isinstance(block, ToolResultBlock):
            return replace(block, content=[await self._rehydrate_block(b) for b in block.content])
        if not isinstance(block, ImageBlock) or block.data is not None or block.blob_ref is None:
            return block

        cached = self._cache.get(block.blob_ref)
        if cached is None:
            raw = await self._blob_store.get(block.blob_ref)
            if block.format in IMAGE_FORMATS:
                cached = (block.format, raw)
            else:
                cached = ("webp", await asyncio.to_thread(_to_webp, raw))
            self._cache[block.blob_ref] = cached
        image_format, data = cached
        return ImageBlock(format=image_format, blob_ref=block.blob_ref, data=data)


def _to_webp(raw: bytes) -> bytes:
    with Image.open(io.BytesIO(raw)) as image:
        out = io.BytesIO()
        image.save(out, format="WEBP", quality=80)
        return out.getvalue()
