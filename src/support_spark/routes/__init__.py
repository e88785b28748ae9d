from support_spark.routes.auth import router as auth_router
from support_spark.routes.conversations import router as conversations_router
from support_spark.routes.demo import router as demo_router
from support_spark.routes.health import router as health_router
from support_spark.routes.supporters import router as supporters_router

__all__ = ["auth_router", "conversations_router", "demo_router", "health_router", "supporters_router"]
