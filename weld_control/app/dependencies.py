from fastapi import HTTPException, Request, status

from weld_control.app.core.rule_engine import RuleEngine


def get_engine(request: Request) -> RuleEngine:
    """Dependency to get the rule engine created during application startup"""
    engine = getattr(request.app.state, "engine", None)

    if engine is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service is initializing, please try again later"
        )

    return engine
