"""Dependency injection (engine)"""

from fastapi import Request

from app.engine import AggregationEngine


def get_engine(request: Request) -> AggregationEngine:
    """
    Get the aggregation engine owned by the running application.

    Args:
        request: Incoming request

    Returns:
        AggregationEngine created in the application lifespan
    """
    return request.app.state.engine
