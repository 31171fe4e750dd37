"""统一异常体系

所有业务异常继承 AssetMirrorError，每类异常带稳定的 code，
结果清单中的错误记录和 CLI 输出都以 code 区分失败类型。

两类传播策略:
  - 致命: ConfigError / ProcessingInProgressError，整个 resolve() 调用直接拒绝
  - 隔离: DownloadError / ParseError / MaxDepthExceeded / PathTraversalError，
    只记录到对应路径，不影响兄弟和祖先路径
"""

from __future__ import annotations

from enum import Enum


class AssetMirrorError(Exception):
    """框架基础异常"""

    code: str = "UNKNOWN"

    def __init__(self, message: str, path: str = "") -> None:
        super().__init__(message)
        self.path = path


class ConfigError(AssetMirrorError):
    """配置缺失或内容无效（致命）"""

    code = "CONFIG_ERROR"

    def __init__(self, message: str, details: list[str] | None = None) -> None:
        super().__init__(message)
        self.details = details or []


class ValidationError(AssetMirrorError):
    """输入数据校验失败"""

    code = "VALIDATION_ERROR"


class ProcessingInProgressError(AssetMirrorError):
    """同一实例上已有 resolve() 在执行（致命）"""

    code = "PROCESSING_IN_PROGRESS"


class DownloadErrorKind(str, Enum):
    NETWORK = "network"
    HTTP_STATUS = "http_status"
    TIMEOUT = "timeout"


class DownloadError(AssetMirrorError):
    """远程拉取失败: 网络错误、非 2xx 状态码或超时"""

    code = "DOWNLOAD_ERROR"

    def __init__(
        self,
        message: str,
        *,
        kind: DownloadErrorKind = DownloadErrorKind.NETWORK,
        path: str = "",
        status: int | None = None,
    ) -> None:
        super().__init__(message, path=path)
        self.kind = kind
        self.status = status


class ParseError(AssetMirrorError):
    """三级解析回退全部失败"""

    code = "PARSE_ERROR"

    def __init__(self, message: str, path: str = "", causes: list[Exception] | None = None) -> None:
        super().__init__(message, path=path)
        self.causes = causes or []


class MaxDepthExceeded(AssetMirrorError):
    """引用超出最大递归深度"""

    code = "MAX_DEPTH_EXCEEDED"

    def __init__(self, path: str, depth: int, max_depth: int) -> None:
        super().__init__(f"超过最大递归深度: {depth} > {max_depth}", path=path)
        self.depth = depth
        self.max_depth = max_depth


class PathTraversalError(AssetMirrorError):
    """引用路径越过了基础目录"""

    code = "PATH_TRAVERSAL"
