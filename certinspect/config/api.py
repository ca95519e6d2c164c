"""
Populate frozen configuration dataclasses from YAML-sourced dictionaries.

Configuration files spell keys with hyphens (``trust-replace``); they map onto
dataclass fields spelled with underscores (``trust_replace``).
"""

import dataclasses
from typing import Any, Dict, Iterable, Iterator, Tuple, Type

from .errors import ConfigurationError

__all__ = ['ConfigurableMixin', 'check_config_keys', 'yaml_key']


def yaml_key(field_name: str) -> str:
    return field_name.replace('_', '-')


def check_config_keys(
    section_name: str, allowed_fields: Iterable[str], config_dict
) -> Dict[str, Any]:
    """
    Verify that a configuration section is a dictionary without unknown keys.

    :param section_name:
        Name of the section, for error messages.
    :param allowed_fields:
        Field names that may appear in the section.
    :param config_dict:
        The raw section, as loaded from YAML.
    :raises ConfigurationError:
        when the section is not a dictionary, or has unknown keys.
    :return:
        A copy of the section, keyed by field name.
    """
    if not isinstance(config_dict, dict):
        raise ConfigurationError(
            f"{section_name} requires a dictionary to initialise."
        )
    allowed = {yaml_key(name) for name in allowed_fields}
    unexpected = sorted(
        str(key)
        for key in config_dict
        if not isinstance(key, str) or yaml_key(key) not in allowed
    )
    if unexpected:
        raise ConfigurationError(
            f"Unexpected {'key' if len(unexpected) == 1 else 'keys'} "
            f"in configuration for {section_name}: {', '.join(unexpected)}."
        )
    return {key.replace('-', '_'): value for key, value in config_dict.items()}


@dataclasses.dataclass(frozen=True)
class ConfigurableMixin:
    """
    Mixin for configuration dataclasses whose fields all have defaults.

    Fields annotated with another :class:`ConfigurableMixin` subclass are
    read from the subsection of the same name.
    """

    @classmethod
    def process_entries(cls, config_dict):
        """
        Validate and convert raw values in place, before the dataclass is
        instantiated. Keys are field names; absent keys fall back to the
        field defaults.

        Overrides should call ``super().process_entries()``.

        :raises ConfigurationError:
            when a value is invalid.
        """
        pass

    @classmethod
    def _subsections(cls) -> Iterator[Tuple[str, Type['ConfigurableMixin']]]:
        for f in dataclasses.fields(cls):
            if isinstance(f.type, type) and issubclass(
                f.type, ConfigurableMixin
            ):
                yield f.name, f.type

    @classmethod
    def from_config(cls, config_dict):
        """
        Instantiate the class on which it is called from a configuration
        section.

        :param config_dict:
            The raw section, as loaded from YAML.
        :raises ConfigurationError:
            when the section has unknown keys or invalid values.
        """
        values = check_config_keys(
            cls.__name__, (f.name for f in dataclasses.fields(cls)), config_dict
        )
        for name, section_cls in cls._subsections():
            if name not in values:
                continue
            try:
                values[name] = section_cls.from_config(values[name])
            except ConfigurationError as e:
                raise ConfigurationError(
                    f"Problem in section '{yaml_key(name)}': {e.msg}"
                ) from e
        cls.process_entries(values)
        return cls(**values)
