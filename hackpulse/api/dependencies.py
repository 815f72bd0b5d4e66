from fastapi import Request

from hackpulse.core.context import AppContext


def get_context(request: Request) -> AppContext:
    return request.app.state.context
