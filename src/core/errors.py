from __future__ import annotations


class MeteringError(RuntimeError):
    pass


class IdentityMissingError(MeteringError):
    pass


class ConfigurationNotFoundError(MeteringError):
    def __init__(self, user_id: str | None, location_id: str | None) -> None:
        super().__init__(f"No active configuration for user={user_id} location={location_id}")
        self.user_id = user_id
        self.location_id = location_id


class InvalidPlanCodeError(MeteringError):
    def __init__(self, plan_code: str) -> None:
        super().__init__(f"Unknown subscription plan code: {plan_code}")
        self.plan_code = plan_code


class StorageConflictError(MeteringError):
    pass


class AgencyLicenseError(MeteringError):
    def __init__(self, message: str, *, status_code: int = 400) -> None:
        super().__init__(message)
        self.status_code = status_code
