from typing import Annotated

from fastapi import Depends, Request

from quotecast.context import RenderContext


def get_render_context(request: Request) -> RenderContext:
    return request.app.state.render_context


RenderCtx = Annotated[RenderContext, Depends(get_render_context)]
