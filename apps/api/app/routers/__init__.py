from .routes_interactions import router as interactions_router

all_routers = [
    interactions_router,
]
