"""IPFS upload proxy for editor images."""

from typing import Optional

import aiohttp

from ..core.config import settings
from ..core.errors import UpstreamError
from ..core.logging import get_logger

logger = get_logger(__name__)


class IPFSService:
    def __init__(self, gateway_url: Optional[str] = None):
        self.gateway_url = (gateway_url or settings.ipfs_gateway_url).rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=60)

    def file_url(self, content_hash: str) -> str:
        return f"{self.gateway_url}/ipfs/{content_hash}"

    async def add_file(self, filename: str, content: bytes, content_type: Optional[str] = None) -> str:
        """Pin a file and return its gateway URL."""
        form = aiohttp.FormData()
        form.add_field(
            "file",
            content,
            filename=filename or "upload",
            content_type=content_type or "application/octet-stream",
        )

        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            async with session.post(f"{self.gateway_url}/api/v0/add", data=form) as response:
                if response.status != 200:
                    detail = await response.text()
                    raise UpstreamError("IPFS", response.status, detail)
                # The add endpoint answers with a text/plain JSON body
                data = await response.json(content_type=None)

        content_hash = data.get("Hash")
        if not content_hash:
            raise UpstreamError("IPFS", 200, "Response did not include a Hash")

        logger.info("ipfs_file_added", hash=content_hash, size=len(content))
        return self.file_url(content_hash)


ipfs_service = IPFSService()
