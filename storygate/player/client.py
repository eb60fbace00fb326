"""
HTTP access checker for players that run outside the API process.
"""
import httpx

from storygate.catalog.models import ContentMonetization
from storygate.services.errors import ErrorCode
from storygate.services.results import AccessDecision, UnlockResult


class HttpAccessChecker:
    """Client for /api/monetization. Network failures surface as httpx errors."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._client = client or httpx.AsyncClient(base_url=base_url.rstrip("/"), timeout=timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def check_access(self, user_id: str, content_id: str) -> AccessDecision:
        r = await self._client.post(
            "/api/monetization/check-node",
            json={"contentId": content_id, "userId": user_id},
        )
        r.raise_for_status()
        data = r.json()
        monetization = data.get("monetization")
        return AccessDecision(
            allowed=bool(data.get("canAccess")),
            reason=data.get("reason") or "",
            monetization=ContentMonetization.model_validate(monetization) if monetization else None,
        )

    async def unlock_with_coins(self, user_id: str, content_id: str) -> UnlockResult:
        r = await self._client.post(
            "/api/monetization/unlock-coins",
            json={"contentId": content_id, "userId": user_id},
        )
        return self._unlock_result(r)

    async def unlock_with_ad(
        self, user_id: str, content_id: str, tracking_id: str, completed: bool
    ) -> UnlockResult:
        r = await self._client.post(
            "/api/monetization/verify-ad",
            json={
                "contentId": content_id,
                "userId": user_id,
                "trackingId": tracking_id,
                "completed": completed,
            },
        )
        return self._unlock_result(r)

    @staticmethod
    def _unlock_result(r: httpx.Response) -> UnlockResult:
        # 504 carries a provider_timeout body; other 5xx are transport failures
        if r.status_code >= 500 and r.status_code != 504:
            r.raise_for_status()
        data = r.json()
        if data.get("success"):
            return UnlockResult(
                success=True,
                message=data.get("message") or "",
                balance=data.get("newBalance"),
                already_unlocked=bool(data.get("alreadyUnlocked")),
            )
        return UnlockResult(
            success=False,
            error=ErrorCode(data["error"]),
            message=data.get("message") or "",
            balance=data.get("balance"),
        )
