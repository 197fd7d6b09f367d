"""Environment backed configuration for the document cache."""

import logging
import os
from typing import Any

from shared.models.errors import ConfigurationError

_TRUE_VALUES = ("true", "1", "yes", "on")


class HelperConfig:
    """Reads every setting from environment variables and hands out the application logger.

    Keys are case-insensitive. Unset and empty variables are treated alike: the
    default is returned, or a ConfigurationError naming the key is raised.
    """

    def __init__(self, logger: logging.Logger) -> None:
        self._logger = logger

    ##########################################
    ################ HELPERS #################
    ##########################################

    @staticmethod
    def _raw(key: str) -> str | None:
        val = os.getenv(key.upper())
        return val.strip() if val and val.strip() else None

    @staticmethod
    def _missing(key: str) -> ConfigurationError:
        return ConfigurationError(f"Environment variable '{key.upper()}' is not set.", hint=f"Set {key.upper()} in the environment.")

    def _lookup(self, key: str, default: Any) -> str | None:
        """Return the raw value, or None when the default applies."""
        raw = self._raw(key)
        if raw is None and default is None:
            raise self._missing(key)
        return raw

    ##########################################
    ################ GETTER ##################
    ##########################################

    def get_string_val(self, key: str, default: str | None = None) -> str:
        """Read a string setting.

        Raises:
            ConfigurationError: If the variable is not set and no default is given.
        """
        raw = self._lookup(key, default)
        return raw if raw is not None else default

    def get_number_val(self, key: str, default: float | int | None = None) -> float | int:
        """Read a numeric setting. Values with a decimal point are returned as float.

        Args:
            key (str): Environment variable name.
            default (float | int | None): Returned if the variable is not set.

        Returns:
            float | int: The parsed value.

        Raises:
            ConfigurationError: If the variable is not set and no default is given, or is not a number.
        """
        raw = self._lookup(key, default)
        if raw is None:
            return default
        try:
            return float(raw) if "." in raw or "e" in raw.lower() else int(raw)
        except ValueError:
            raise ConfigurationError(f"Environment variable '{key.upper()}' is not a valid number: '{raw}'.")

    def get_bool_val(self, key: str, default: bool | None = None) -> bool:
        """Read a boolean setting. true, 1, yes and on count as True, anything else as False."""
        raw = self._lookup(key, default)
        if raw is None:
            return default
        return raw.lower() in _TRUE_VALUES

    def get_list_val(self, key: str, default: list[str] | None = None, separator: str = ",", element_type: type = str) -> list:
        """Read a list setting written as "[elem1,elem2,...]".

        Args:
            key (str): Environment variable name.
            default (list[str] | None): Returned if the variable is not set.
            separator (str): Delimiter between the elements.
            element_type (type): Type every element is cast to.

        Returns:
            list: The elements, blanks dropped.

        Raises:
            ConfigurationError: If the variable is not set and no default is given, is not bracketed,
                or holds an element that can not be cast.
        """
        raw = self._lookup(key, default)
        if raw is None:
            return default
        if not (raw.startswith("[") and raw.endswith("]")):
            raise ConfigurationError(
                f"Environment variable '{key.upper()}' must be in the format '[elem1{separator}elem2{separator}...]'. Got: '{raw}'"
            )
        parts = [part.strip() for part in raw[1:-1].split(separator)]
        try:
            return [element_type(part) for part in parts if part]
        except ValueError as e:
            raise ConfigurationError(f"Environment variable '{key.upper()}' contains an invalid {element_type.__name__} element: {e}")

    def get_logger(self) -> logging.Logger:
        return self._logger
