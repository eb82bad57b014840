"""Central configuration helper for the index sync bridge."""

import logging
import os
from typing import Mapping

from shared.exceptions import ConfigurationError

_TRUE_VALUES = ("true", "1", "yes", "on")


class HelperConfig:
    """Reads all settings from environment variables.

    Keys are case-insensitive and looked up in upper case. An empty value
    counts as unset. Every getter raises ConfigurationError when a key without
    default is missing, so misconfiguration surfaces at construction time.
    """

    def __init__(self, logger: logging.Logger, environ: Mapping[str, str] | None = None) -> None:
        self._logger = logger
        self._environ = environ if environ is not None else os.environ

    def _read_raw(self, key: str) -> str | None:
        val = self._environ.get(key.upper())
        if val is None or not val.strip():
            return None
        return val.strip()

    @staticmethod
    def _missing(key: str) -> ConfigurationError:
        return ConfigurationError(f"Environment variable '{key.upper()}' is not set.")

    def get_string_val(self, key: str, default: str | None = None) -> str:
        """Read a string environment variable.

        Raises:
            ConfigurationError: If the variable is not set and no default is provided.
        """
        val = self._read_raw(key)
        if val is None:
            if default is None:
                raise self._missing(key)
            return default
        return val

    def get_number_val(self, key: str, default: float | int | None = None) -> float | int:
        """Read a numeric environment variable. Values with a dot are floats, others ints.

        Raises:
            ConfigurationError: If the variable is not set and no default is provided,
                or the value cannot be parsed as a number.
        """
        raw = self._read_raw(key)
        if raw is None:
            if default is None:
                raise self._missing(key)
            return default
        try:
            return float(raw) if "." in raw else int(raw)
        except ValueError:
            raise ConfigurationError(f"Environment variable '{key.upper()}' is not a valid number: '{raw}'.")

    def get_bool_val(self, key: str, default: bool | None = None) -> bool:
        raw = self._read_raw(key)
        if raw is None:
            if default is None:
                raise self._missing(key)
            return default
        return raw.lower() in _TRUE_VALUES

    def get_list_val(self, key: str, default: list[str] | None = None, separator: str = ",", element_type: type = str) -> list:
        """Read a list environment variable in the "[elem1,elem2,...]" syntax.

        Args:
            key (str): Environment variable name (case-insensitive).
            default (list[str] | None): Fallback value if the variable is not set.
            separator (str): The delimiter between elements.
            element_type (type): The type to which each element is cast.

        Returns:
            list: The parsed elements; empty for "[]".

        Raises:
            ConfigurationError: If the variable is not set and no default is provided,
                the brackets are missing, or an element cannot be cast.
        """
        raw_val = self._read_raw(key)
        if raw_val is None:
            if default is None:
                raise self._missing(key)
            return default
        if not raw_val.startswith("[") or not raw_val.endswith("]"):
            raise ConfigurationError(f"Environment variable '{key.upper()}' must be in the format '[elem1{separator}elem2{separator}...]'. Got: '{raw_val}'")
        elements = [v.strip() for v in raw_val[1:-1].split(separator) if v.strip()]
        try:
            return [element_type(elem) for elem in elements]
        except ValueError as e:
            raise ConfigurationError(f"Environment variable '{key.upper()}' contains invalid elements: {e}. Type set to {element_type.__name__}. Got: '{raw_val}'")

    def get_logger(self) -> logging.Logger:
        """Return the application logger."""
        return self._logger
