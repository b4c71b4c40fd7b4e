from coreason_session.config import SessionConfig
from coreason_session.runtime import SandboxProvider
from coreason_session.runtimes.e2b import E2BSandboxProvider


class SandboxFactory:
    """
    Factory to create SandboxProvider instances based on configuration.
    """

    @staticmethod
    def get_provider(config: SessionConfig) -> SandboxProvider:
        """
        Returns an instance of the configured SandboxProvider.
        """
        if config.runtime == "e2b":
            return E2BSandboxProvider(api_key=config.e2b_api_key)
        else:
            # This should be unreachable due to Pydantic validation, but for safety:
            raise ValueError(f"Unknown runtime: {config.runtime}")  # pragma: no cover
