import os
import platform
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from livefeed.channel import ChannelConfig

# The default extension for configuration files
config_extension = '.yaml'


class ConfigError(ValueError):
    """ A configuration file could not be read, or failed validation. """


class ChannelSettings(BaseModel):
    """ The settings of one channel, as written in a configuration file. """
    model_config = ConfigDict(extra='forbid')

    endpoint: str = Field(min_length=1)
    type: str = Field(min_length=1)
    stream: Optional[str] = None
    filter: Optional[Dict[str, Any]] = None
    max_retries: int = Field(default=0, ge=0)
    retry_interval: int = Field(default=1000, ge=0)

    def channel_config(self) -> ChannelConfig:
        return ChannelConfig(self.endpoint, self.type, stream=self.stream, filter=self.filter,
                             max_retries=self.max_retries, retry_interval=self.retry_interval)


def config_flavor(name, flavor=None):
    return name if not flavor else name + '.' + flavor


def config_filename(name, directory):
    return os.path.join(directory, name + config_extension)


def load_config_file_base(file, must_exist=True) -> dict:
    """
    Loads a configuration file
    :param file:        The configuration file to load
    :param must_exist:  when True, the file must exist or an exception is thrown.
    :return: the mapping in the file. Missing and empty files give an empty mapping.
    """
    if not must_exist and not os.path.exists(file):
        return {}
    with open(file, encoding='utf-8') as f:
        try:
            content = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(str(e) + ' at ' + file) from e
    if content is None:
        return {}
    if not isinstance(content, dict):
        raise ConfigError("expected a mapping of channels at " + file)
    return content


def config_flavor_file(name, directory, flavor=None) -> dict:
    """
    Loads a specialization of a config file, named after the base name followed by a
    period and the flavor.
    """
    return load_config_file_base(config_filename(config_flavor(name, flavor), directory), must_exist=False)


def map_os_name(name):
    """
    >>> map_os_name('Windows')
    'windows'
    >>> map_os_name("Darwin")
    'osx'
    """
    name = name.lower()
    if name == 'darwin':
        name = 'osx'
    return name


def os_name():
    return map_os_name(platform.system())


def merge(target: dict, overrides: dict):
    """ recursively merges overrides into target, like ConfigObj.merge() """
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            merge(target[key], value)
        else:
            target[key] = value
    return target


def load_config(name, directory, user_directory='~'):
    """
    Loads all the configuration files for the given name. Each top-level key names a
    channel. Later files override earlier ones:
    - the default specialization (name.default.yaml)
    - the platform specialization (e.g. name.linux.yaml)
    - the user override (~/name.yaml)
    - the base configuration (name.yaml)
    :return: the merged mapping, validated as a dict from channel name to ChannelSettings.
    """
    config = {}
    merge(config, config_flavor_file(name, directory, 'default'))
    merge(config, config_flavor_file(name, directory, os_name()))
    merge(config, load_config_file_base(config_filename(name, os.path.expanduser(user_directory)),
                                        must_exist=False))
    merge(config, config_flavor_file(name, directory))
    settings = {}
    for channel, section in config.items():
        try:
            settings[channel] = ChannelSettings.model_validate(section)
        except ValidationError as e:
            raise ConfigError("the config file %s failed validation for channel '%s': %s" %
                              (name, channel, e)) from e
    return settings


def load_channel_configs(name, directory, user_directory='~'):
    """
    :return: a dict from channel name to ChannelConfig for every channel in the configuration.
    """
    return {channel: settings.channel_config()
            for channel, settings in load_config(name, directory, user_directory).items()}


def load_channel_config(name, directory, channel, user_directory='~') -> ChannelConfig:
    """
    Loads the named channel from the configuration.
    :raises KeyError: when the configuration has no such channel.
    """
    configs = load_channel_configs(name, directory, user_directory)
    try:
        return configs[channel]
    except KeyError:
        raise KeyError("no channel '%s' in config %s" % (channel, name)) from None
