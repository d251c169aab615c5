"""
Tarium 统一异常体系

提供分层的异常结构，支持错误代码、上下文信息和 JSON 序列化。
"""

from typing import Any, Dict, List, Optional
import aiohttp


class TariumError(Exception):
    """Tarium 基础异常类"""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self._get_default_code()
        self.context = context or {}

    def _get_default_code(self) -> str:
        """获取默认错误代码"""
        return "E000"

    def to_dict(self) -> Dict[str, Any]:
        """将异常转换为字典格式"""
        return {
            "error": True,
            "code": self.code,
            "message": self.message,
            "context": self.context,
            "type": self.__class__.__name__,
        }

    def __str__(self) -> str:
        if self.code:
            return f"[{self.code}] {self.message}"
        return self.message


class ConfigError(TariumError):
    """配置相关错误"""

    def _get_default_code(self) -> str:
        return "E100"


class ConfigParseError(ConfigError):
    """配置解析错误"""

    def _get_default_code(self) -> str:
        return "E101"


class ConfigValidationError(ConfigError):
    """配置验证错误"""

    def _get_default_code(self) -> str:
        return "E102"


class APIError(TariumError):
    """API 相关错误"""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        response: Optional[aiohttp.ClientResponse] = None,
        component: str = "GitHub",
    ):
        super().__init__(f"{component}: {message}", code, context)
        self.component = component
        self.response = response
        self.context["component"] = component
        if response is not None:
            self.context["status_code"] = response.status
            self.context["url"] = str(response.url)

    @property
    def status(self) -> Optional[int]:
        return self.context.get("status_code")

    def _get_default_code(self) -> str:
        return "E200"


class APINotFoundError(APIError):
    """API 资源不存在"""

    def _get_default_code(self) -> str:
        return "E404"


class APIRateLimitError(APIError):
    """API 速率限制"""

    def _get_default_code(self) -> str:
        return "E429"


class APIServerError(APIError):
    """API 服务器错误"""

    def _get_default_code(self) -> str:
        return "E500"


class FilterError(TariumError):
    """过滤器相关错误"""

    def _get_default_code(self) -> str:
        return "E600"


class InvalidPatternError(FilterError):
    """过滤器中的正则表达式无法编译"""

    def __init__(self, pattern: str, reason: str):
        super().__init__(
            f"无效的正则表达式 {pattern!r}: {reason}",
            context={"pattern": pattern},
        )
        self.pattern = pattern

    def _get_default_code(self) -> str:
        return "E601"


class FilterEmptyError(FilterError):
    """某些过滤器对所有候选都不匹配"""

    def __init__(self, filters: List[str]):
        super().__init__(
            f"以下过滤器没有匹配任何文件: {', '.join(filters)}",
            context={"filters": filters},
        )
        self.filters = filters

    def _get_default_code(self) -> str:
        return "E602"


class NoCompatibleFilesError(FilterError):
    """应用全部过滤器后没有兼容的文件"""

    def __init__(self, message: str = "应用全部过滤器后没有找到兼容的文件"):
        super().__init__(message)

    def _get_default_code(self) -> str:
        return "E603"


class ResolveError(TariumError):
    """模组解析错误"""

    def _get_default_code(self) -> str:
        return "E700"


class DistributionDeniedError(ResolveError):
    """项目作者禁止第三方程序下载"""

    def __init__(self, project: str = ""):
        super().__init__(
            "该项目的开发者禁止第三方程序下载",
            context={"project": project},
        )

    def _get_default_code(self) -> str:
        return "E701"


class IncompatibleError(ResolveError):
    """项目与配置不兼容，包装过滤器错误"""

    def __init__(self, cause: FilterError):
        super().__init__(
            f"项目不兼容: {cause.message}",
            context={"cause": cause.to_dict()},
        )
        self.cause = cause

    def _get_default_code(self) -> str:
        return "E702"


class DoesNotExistError(ResolveError):
    """项目不存在或没有可用的归档发布"""

    def __init__(self, project: str = ""):
        super().__init__("项目不存在", context={"project": project})

    def _get_default_code(self) -> str:
        return "E703"


class InvalidPinError(ResolveError):
    """锁定的资源 ID 无效"""

    def _get_default_code(self) -> str:
        return "E704"


class DownloadError(TariumError):
    """下载相关错误"""

    def _get_default_code(self) -> str:
        return "E300"


class DownloadNetworkError(DownloadError):
    """下载网络错误"""

    def _get_default_code(self) -> str:
        return "E301"


class DownloadFileError(DownloadError):
    """下载文件操作错误"""

    def _get_default_code(self) -> str:
        return "E303"


class ArchiveError(TariumError):
    """归档安装相关错误"""

    def _get_default_code(self) -> str:
        return "E400"


class ExtractError(ArchiveError):
    """解压失败（损坏或不支持的内容）"""

    def _get_default_code(self) -> str:
        return "E401"


class MergeError(ArchiveError):
    """合并到输出目录时的文件系统错误"""

    def _get_default_code(self) -> str:
        return "E402"


class ArchiveMoveError(ArchiveError):
    """归档移动到存储目录失败"""

    def _get_default_code(self) -> str:
        return "E403"


class ModStateError(TariumError):
    """启用/禁用模组时的文件系统错误"""

    def _get_default_code(self) -> str:
        return "E800"


class ModManagementError(TariumError):
    """模组管理错误"""

    def _get_default_code(self) -> str:
        return "E900"


class AlreadyAddedError(ModManagementError):
    """项目已经添加过"""

    def __init__(self, project: str):
        super().__init__("该项目已经添加过", context={"project": project})

    def _get_default_code(self) -> str:
        return "E901"


class ModNotFoundError(ModManagementError):
    """配置中不存在该模组"""

    def __init__(self, query: str):
        super().__init__(
            f"当前配置中不存在 ID 或名称为 {query} 的模组",
            context={"query": query},
        )

    def _get_default_code(self) -> str:
        return "E902"


__all__ = [
    # 基础异常
    "TariumError",
    # 配置异常
    "ConfigError",
    "ConfigParseError",
    "ConfigValidationError",
    # API 异常
    "APIError",
    "APINotFoundError",
    "APIRateLimitError",
    "APIServerError",
    # 过滤器异常
    "FilterError",
    "InvalidPatternError",
    "FilterEmptyError",
    "NoCompatibleFilesError",
    # 解析异常
    "ResolveError",
    "DistributionDeniedError",
    "IncompatibleError",
    "DoesNotExistError",
    "InvalidPinError",
    # 下载异常
    "DownloadError",
    "DownloadNetworkError",
    "DownloadFileError",
    # 归档异常
    "ArchiveError",
    "ExtractError",
    "MergeError",
    "ArchiveMoveError",
    # 模组状态/管理异常
    "ModStateError",
    "ModManagementError",
    "AlreadyAddedError",
    "ModNotFoundError",
]
