# memeflow/storage/__init__.py
# 存储层模块
#
# 这个模块包含外部存储资源的访问实现：
# - uploadthing.py: 生成图片的公开托管（UploadThing）

from memeflow.storage.uploadthing import UploadThingClient, resolve_api_key

__all__ = [
    "UploadThingClient",
    "resolve_api_key",
]
