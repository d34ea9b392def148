"""异常层次结构。

供应商适配器、分段编辑和素材生成共用的错误类型。每个类型在
``main.py`` 中映射到固定的 HTTP 状态码。
"""

from __future__ import annotations


class ReelforgeError(Exception):
    """所有业务异常的基类。"""


class VendorConfigurationError(ReelforgeError):
    """供应商凭证缺失，直接失败，不重试。"""

    def __init__(self, vendor: str, missing: list[str]) -> None:
        self.vendor = vendor
        self.missing = missing
        super().__init__(f"{vendor} credentials are not configured: {', '.join(missing)}")


class VendorHTTPError(ReelforgeError):
    """供应商返回非 2xx，或请求在传输层失败。

    ``body`` 保留供应商原始错误体，便于排查。
    """

    def __init__(self, vendor: str, status_code: int | None, body: str) -> None:
        self.vendor = vendor
        self.status_code = status_code
        self.body = body
        status = status_code if status_code is not None else "transport"
        super().__init__(f"{vendor} API error ({status}): {body}")


class EmptyVendorResponseError(ReelforgeError):
    """2xx 响应中没有可用内容。调用方将其视为内容被过滤。"""

    def __init__(self, vendor: str, detail: str = "no usable content in response") -> None:
        self.vendor = vendor
        self.detail = detail
        super().__init__(f"{vendor}: {detail}")


class ContentFilteredError(ReelforgeError):
    """面向用户的内容过滤错误。"""

    code = "content_filter"

    def __init__(self, message: str = "内容被过滤，请重新生成或编辑描述词") -> None:
        super().__init__(message)


class PrerequisiteError(ReelforgeError, ValueError):
    """前置条件不满足，消息直接展示给用户。"""


class SegmentEditError(ReelforgeError, ValueError):
    """非法的切分或合并操作。"""


class BatchConflictError(ReelforgeError):
    """同一项目上已有批处理在运行。"""


__all__ = [
    "BatchConflictError",
    "ContentFilteredError",
    "EmptyVendorResponseError",
    "PrerequisiteError",
    "ReelforgeError",
    "SegmentEditError",
    "VendorConfigurationError",
    "VendorHTTPError",
]
