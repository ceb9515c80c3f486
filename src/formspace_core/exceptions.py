"""
Exceptions raised by formspace_core services.

Quota decisions and allocation validation failures are returned as result
objects, not raised. These cover programming errors and missing state.
"""


class FormspaceCoreError(Exception):
    """Base class for formspace_core errors."""


class SubscriptionNotFoundError(FormspaceCoreError):
    """No subscription row exists for the user."""

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"No subscription found for user {user_id}")


class InvalidTierError(FormspaceCoreError, ValueError):
    """Unknown subscription tier name."""

    def __init__(self, tier: str):
        self.tier = tier
        super().__init__(f"Invalid subscription tier: {tier}")


class InvalidOverageModeError(FormspaceCoreError, ValueError):
    """Unknown overage mode."""

    def __init__(self, mode: str):
        self.mode = mode
        super().__init__(f"Invalid overage mode: {mode}")


class FeatureNotAvailableError(FormspaceCoreError):
    """The user's tier does not include the requested feature."""

    def __init__(self, feature_name: str, tier: str):
        self.feature_name = feature_name
        self.tier = tier
        super().__init__(
            f"This feature ({feature_name}) is not available on the {tier} tier. "
            f"Please upgrade your plan."
        )
