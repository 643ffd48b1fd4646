from fastapi import FastAPI

from . import challenge_submissions, challenges, collaborations, health, ideas, submissions


def register_routes(app: FastAPI) -> None:
    """Attach all API routers to the FastAPI application."""
    app.include_router(health.router)
    app.include_router(challenges.router)
    app.include_router(collaborations.router)
    app.include_router(ideas.router)
    app.include_router(challenge_submissions.router)
    # Generic /{kind}/{id} paths go last so fixed prefixes match first.
    app.include_router(submissions.router)
