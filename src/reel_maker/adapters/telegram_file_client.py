"""Telegram file download client."""

from dataclasses import dataclass
from typing import Protocol

import httpx


@dataclass(frozen=True)
class TelegramFile:
    """Downloaded Telegram file."""

    content: bytes
    file_path: str

    @property
    def extension(self) -> str:
        _, dot, ext = self.file_path.rpartition(".")
        return ext.lower() if dot and ext else "jpg"


class TelegramFileClient(Protocol):
    """Interface for downloading Telegram files."""

    async def download_file(self, file_id: str) -> TelegramFile:
        """Download a Telegram file and return its bytes and remote path."""


@dataclass
class HttpxTelegramFileClient(TelegramFileClient):
    """Telegram file client using httpx."""

    bot_token: str
    http_client: httpx.AsyncClient
    timeout_seconds: float = 30.0

    @classmethod
    def create(
        cls, bot_token: str, timeout_seconds: float = 30.0
    ) -> "HttpxTelegramFileClient":
        """Create a Telegram file client with a managed httpx session."""
        return cls(
            bot_token=bot_token,
            http_client=httpx.AsyncClient(),
            timeout_seconds=timeout_seconds,
        )

    async def download_file(self, file_id: str) -> TelegramFile:
        """Download Telegram file bytes via getFile."""
        get_file_url = f"https://api.telegram.org/bot{self.bot_token}/getFile"
        response = await self.http_client.get(
            get_file_url, params={"file_id": file_id}, timeout=10
        )
        response.raise_for_status()
        payload = response.json()
        if not payload.get("ok"):
            raise RuntimeError("Telegram getFile failed")
        file_path = payload["result"]["file_path"]
        download_url = f"https://api.telegram.org/file/bot{self.bot_token}/{file_path}"
        file_response = await self.http_client.get(
            download_url, timeout=self.timeout_seconds
        )
        file_response.raise_for_status()
        return TelegramFile(content=file_response.content, file_path=file_path)

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()
