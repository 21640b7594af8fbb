# crmhub/modules/integrations/rate_limit.py

import math
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Callable, Optional

from limits import RateLimitItem, RateLimitItemPerDay, RateLimitItemPerSecond
from limits.storage import MemoryStorage
from limits.strategies import FixedWindowRateLimiter


@dataclass
class RateLimitResult:
    limited: bool
    reason: Optional[str] = None
    retry_after_seconds: Optional[int] = None


class WebhookRateLimiter:
    """
    Limites do webhook sobre o `limits` (mesmo motor do slowapi), em memória.

    - janela fixa por IP (todas as integrações) e por integração;
    - contador diário por integração, chaveado pela data local, então vira na
      meia-noite do fuso informado.

    O MemoryStorage descarta as chaves expiradas sozinho. Estado é por processo.
    """

    def __init__(
        self,
        per_token: int = 100,
        per_ip: int = 200,
        daily: int = 1000,
        window_seconds: int = 60,
        clock: Optional[Callable[[], float]] = None,
        tz: tzinfo = timezone.utc,
    ):
        self.per_token = per_token
        self.per_ip = per_ip
        self.daily = daily
        self.window_seconds = window_seconds
        self.tz = tz
        # o storage do limits lê time.time(); o clock só serve à data local
        self._clock = clock or (lambda: time.time())
        self.storage = MemoryStorage()
        self._limiter = FixedWindowRateLimiter(self.storage)

    def _window_item(self, amount: int) -> RateLimitItem:
        return RateLimitItemPerSecond(amount, self.window_seconds)

    def _retry_after(self, item: RateLimitItem, *identifiers: str) -> int:
        reset_at = self._limiter.get_window_stats(item, *identifiers).reset_time
        return max(1, math.ceil(reset_at - self._clock()))

    def _seconds_to_midnight(self, now: datetime) -> int:
        tomorrow = (now + timedelta(days=1)).date()
        midnight = datetime(tomorrow.year, tomorrow.month, tomorrow.day, tzinfo=self.tz)
        return max(1, math.ceil((midnight - now).total_seconds()))

    def check(self, integration_id: str, client_ip: str) -> RateLimitResult:
        ip_item = self._window_item(self.per_ip)
        if not self._limiter.hit(ip_item, "webhook-ip", client_ip):
            return RateLimitResult(
                limited=True,
                reason="IP rate limit exceeded",
                retry_after_seconds=self._retry_after(ip_item, "webhook-ip", client_ip),
            )

        now = datetime.fromtimestamp(self._clock(), tz=self.tz)
        token_item = self._window_item(self.per_token)
        daily_item = RateLimitItemPerDay(self.daily)
        daily_key = f"{integration_id}:{now.date().isoformat()}"

        token_ok = self._limiter.hit(token_item, "webhook-token", integration_id)
        daily_ok = self._limiter.hit(daily_item, "webhook-daily", daily_key)

        if not token_ok:
            return RateLimitResult(
                limited=True,
                reason=f"Token rate limit exceeded (max {self.per_token}/minute)",
                retry_after_seconds=self._retry_after(token_item, "webhook-token", integration_id),
            )
        if not daily_ok:
            return RateLimitResult(
                limited=True,
                reason=f"Daily limit exceeded (max {self.daily} leads/day per integration)",
                retry_after_seconds=self._seconds_to_midnight(now),
            )
        return RateLimitResult(limited=False)

    def reset(self) -> None:
        self.storage.reset()
