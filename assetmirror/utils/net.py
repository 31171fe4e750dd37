"""URL 工具: 远程资源基址的校验与规整"""

from __future__ import annotations

from urllib.parse import urlsplit, urlunsplit

from assetmirror.core.exceptions import ValidationError

_ALLOWED_SCHEMES = frozenset(("http", "https"))


def validate_url_scheme(url: str, *, context: str = "") -> None:
    """只放行带主机名的 http/https 地址

    file://、ftp:// 或相对路径作为远程基址时会读到非预期的位置。

    Raises:
        ValidationError: 协议不在白名单内，或缺少主机名
    """
    parts = urlsplit(url)
    where = f" ({context})" if context else ""
    if parts.scheme not in _ALLOWED_SCHEMES:
        raise ValidationError(
            f"不允许的 URL 协议 '{parts.scheme}'{where}，仅支持 http/https: {url}"
        )
    if not parts.netloc:
        raise ValidationError(f"URL 缺少主机名{where}: {url}")


def as_directory_url(url: str, *, context: str = "") -> str:
    """校验后把 URL 的路径部分规整为以 "/" 结尾的目录，并丢弃片段

    urljoin 以目录基址拼接相对路径时才会追加，而不是替换最后一段。
    """
    validate_url_scheme(url, context=context)
    parts = urlsplit(url)
    path = parts.path if parts.path.endswith("/") else parts.path + "/"
    return urlunsplit((parts.scheme, parts.netloc, path, parts.query, ""))
