from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from captionburn.services.render_queue import RenderQueue


@lru_cache
def get_render_queue() -> RenderQueue:
    return RenderQueue()


Queue = Annotated[RenderQueue, Depends(get_render_queue)]
