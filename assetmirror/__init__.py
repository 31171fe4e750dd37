"""assetmirror - 层级资源文件镜像与依赖解析"""

__version__ = "0.1.0"
