"""火山引擎 API 请求签名 (HMAC-SHA256)。

签名密钥按 日期 -> 区域 -> 服务 -> "request" 的顺序链式派生。
"""

from __future__ import annotations

import hashlib
import hmac
from dataclasses import dataclass
from datetime import datetime, timezone
from urllib.parse import quote

ALGORITHM = "HMAC-SHA256"


def _sha256_hex(payload: bytes) -> str:
    return hashlib.sha256(payload).hexdigest()


def _hmac(key: bytes, message: str) -> bytes:
    return hmac.new(key, message.encode("utf-8"), hashlib.sha256).digest()


@dataclass(slots=True)
class VolcengineSigner:
    """为火山引擎 MaaS 请求生成 ``X-Date`` 与 ``Authorization`` 头。"""

    access_key: str
    secret_key: str
    region: str = "cn-beijing"
    service: str = "ml_maas"

    def sign(
        self,
        method: str,
        path: str,
        headers: dict[str, str],
        body: bytes,
        *,
        query: dict[str, str] | None = None,
        now: datetime | None = None,
    ) -> dict[str, str]:
        timestamp = (now or datetime.now(timezone.utc)).strftime("%Y%m%dT%H%M%SZ")
        date = timestamp[:8]

        canonical_request = self.canonical_request(method, path, headers, body, query=query)
        credential_scope = f"{date}/{self.region}/{self.service}/request"
        string_to_sign = "\n".join(
            [ALGORITHM, timestamp, credential_scope, _sha256_hex(canonical_request.encode("utf-8"))]
        )
        signature = hmac.new(
            self.signing_key(date), string_to_sign.encode("utf-8"), hashlib.sha256
        ).hexdigest()

        signed_headers = ";".join(sorted(key.lower() for key in headers))
        return {
            "X-Date": timestamp,
            "Authorization": (
                f"{ALGORITHM} Credential={self.access_key}/{credential_scope}, "
                f"SignedHeaders={signed_headers}, Signature={signature}"
            ),
        }

    def canonical_request(
        self,
        method: str,
        path: str,
        headers: dict[str, str],
        body: bytes,
        *,
        query: dict[str, str] | None = None,
    ) -> str:
        ordered = sorted(headers.items(), key=lambda item: item[0].lower())
        canonical_headers = "\n".join(f"{key.lower()}:{value.strip()}" for key, value in ordered)
        signed_headers = ";".join(key.lower() for key, _ in ordered)
        canonical_query = "&".join(
            f"{quote(key, safe='')}={quote(value, safe='')}" for key, value in sorted((query or {}).items())
        )
        return "\n".join(
            [
                method.upper(),
                path,
                canonical_query,
                canonical_headers,
                "",
                signed_headers,
                _sha256_hex(body),
            ]
        )

    def signing_key(self, date: str) -> bytes:
        k_date = _hmac(self.secret_key.encode("utf-8"), date)
        k_region = _hmac(k_date, self.region)
        k_service = _hmac(k_region, self.service)
        return _hmac(k_service, "request")


__all__ = ["ALGORITHM", "VolcengineSigner"]
