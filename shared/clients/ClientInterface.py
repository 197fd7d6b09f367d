from abc import ABC, abstractmethod

from typing import Any
from shared.models.config import EnvConfig
from shared.models.errors import ConfigurationError

from shared.helper.HelperConfig import HelperConfig


class ClientInterface(ABC):
    def __init__(self, helper_config: HelperConfig):
        self.logging = helper_config.get_logger()
        self._helper_config = helper_config
        self.timeout = helper_config.get_number_val(f"{self.get_client_type().upper()}_TIMEOUT", default=30.0)
        self.validate_full_configuration()

    ##########################################
    ############### CHECKER ##################
    ##########################################

    def validate_full_configuration(self) -> None:
        """
        Validates that all required configuration values for the client are set and valid.

        Raises:
            ConfigurationError: If any required configuration value is missing or invalid. The message lists every missing key.
        """
        missing: list[str] = []
        for config in self._get_required_config():
            try:
                _ = self.get_config_val(raw_key=config.env_key, default=config.default, val_type=config.val_type)
            except ConfigurationError:
                key = self._get_config_key_name(config.env_key)
                missing.append(f"{key} ({config.description})" if config.description else key)
        if missing:
            raise ConfigurationError(
                f"{self.get_client_type().capitalize()} client '{self.get_engine_name()}' is not configured. Missing: {', '.join(missing)}",
                hint=f"Set {', '.join(missing)} in the environment.",
            )

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def get_client_type(self) -> str:
        """
        Returns the type of the client in lowercase. E.g. "embed"
        """
        return self._get_client_type().lower()

    @abstractmethod
    def _get_client_type(self) -> str:
        """
        Returns the type of the client. E.g. "embed"
        """
        pass

    def get_engine_name(self) -> str:
        """
        Returns the name of the engine used by the client. E.g. "ollama"
        """
        return self._get_engine_name().lower()

    @abstractmethod
    def _get_engine_name(self) -> str:
        """
        Returns the name of the engine used by the client. E.g. "ollama"
        """
        pass

    ################ CONFIG ##################
    @abstractmethod
    def _get_required_config(self) -> list[EnvConfig]:
        """
        Returns all required configurations for the client.

        Returns:
            list[EnvConfig]: A list containing the details of each required configuration key.
        """
        pass

    def _get_config_key_name(self, raw_key: str) -> str:
        """
        Returns:
            str: The full configuration key name for the client. E.g. "STORE_NEO4J_URI"
        """
        key_prefix = f"{self.get_client_type().upper()}_{self.get_engine_name().upper()}"
        return f"{key_prefix}_{raw_key.upper()}"

    def get_config_val(self, raw_key: str, default: Any = None, val_type: str = "string") -> Any:
        """
        Retrieves the value of a configuration key for the client.

        Args:
            raw_key (str): The raw configuration key name
            default (Any): The default value to return if the configuration key is not set
            val_type (str): The type of the configuration value ("string", "number", "bool", "list")
        """
        key = self._get_config_key_name(raw_key)
        if val_type == "string":
            return self._helper_config.get_string_val(key, default=default)
        elif val_type == "number":
            return self._helper_config.get_number_val(key, default=default)
        elif val_type == "bool":
            return self._helper_config.get_bool_val(key, default=default)
        elif val_type == "list":
            return self._helper_config.get_list_val(key, default=default)
        else:
            raise ConfigurationError(f"Unsupported config value type '{val_type}' for env key '{raw_key}' in {self.get_client_type().upper()} client '{self.get_engine_name()}'.")

    ##########################################
    ############## LIFECYCLE #################
    ##########################################

    @abstractmethod
    async def boot(self) -> None:
        """Acquire the connection resources of the client (HTTP session, driver, ...)."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release every resource acquired in boot(). Safe to call more than once."""
        pass

    @abstractmethod
    async def do_healthcheck(self) -> bool:
        """Check if the client backend is reachable and usable.

        Returns:
            bool: True if the backend answered as expected.
        """
        pass
