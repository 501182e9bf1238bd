import logging
import os
import platform

from configobj import ConfigObj, ConfigObjError, Section
from configobj.validate import Validator

logger = logging.getLogger(__name__)

# The default extension for configuration files
config_extension = '.cfg'

# environment variable naming the directory that holds per-user overrides
user_config_env = 'SIMCONNECT_CONFIG_DIR'


def config_flavor(name, flavor=None):
    """
    >>> config_flavor('settings', 'linux')
    'settings.linux'
    >>> config_flavor('settings')
    'settings'
    """
    return name if not flavor else name + '.' + flavor


def config_filename(name, directory):
    return os.path.join(directory, name + config_extension)


def load_config_file_base(file, must_exist=True):
    """
    Loads a single configuration file.
    :param file:        The configuration file to load
    :param must_exist:  when True, the file must exist or an exception is thrown.
    :return: The ConfigObj instance for the file, empty when the file is optional and missing.
    """
    try:
        return ConfigObj(file, interpolation='Template', file_error=must_exist) \
            if must_exist or os.path.exists(file) else ConfigObj()
    except ConfigObjError as e:
        raise type(e)(str(e) + ' at ' + file)


def config_flavor_file(name, directory, subpart=None) -> ConfigObj:
    """
    Loads a specialization of a config file. The file is named after the base, followed by
    a period and the specialization. Missing specializations load as empty configurations.
    """
    file = config_filename(config_flavor(name, subpart), directory)
    return load_config_file_base(file, False)


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


def user_config_dir():
    return os.environ.get(user_config_env) or os.path.expanduser(os.path.join('~', '.simconnect'))


def load_config(name, directory) -> ConfigObj:
    """
    Loads and validates all the configuration files that relate to the given name.
    Later layers override earlier ones:

    - the default specialization (name.default.cfg)
    - the platform specialization (name.linux.cfg, name.osx.cfg, name.windows.cfg)
    - the user override, looked up in user_config_dir()
    - the base configuration (name.cfg)

    The merged configuration is validated against name.schema.cfg, which also supplies
    defaults for values no layer defines.

    :param name: the base name of the configuration to load.
    :param directory: the location of the configuration files
    :raises ConfigObjError: when the merged configuration fails validation
    """
    schema = config_filename(config_flavor(name, 'schema'), directory)
    config = ConfigObj(configspec=schema)
    layers = (
        config_flavor_file(name, directory, 'default'),
        config_flavor_file(name, directory, os_name()),
        load_config_file_base(config_filename(name, user_config_dir()), must_exist=False),
        config_flavor_file(name, directory),
    )
    for layer in layers:
        config.merge(layer)

    result = config.validate(Validator())
    if result is not True:
        raise ConfigObjError("the config file %s failed validation %s" % (name, result))
    return config


def fetch_conf_path(conf: Section, path):
    """
    Retrieves the configuration section at the given path of section names.
    :return: the section, or None when any part of the path is missing
    """
    for p in path:
        if not isinstance(conf, Section):
            return None
        conf = conf.get(p, None)
        if conf is None:
            return None
    return conf


def apply_conf(conf: Section, target):
    """
    Sets each configured value on the target, for names the target already defines.
    :return: the names that were applied.
    """
    applied = []
    for k, v in conf.items():
        if hasattr(target, k):
            setattr(target, k, v)
            applied.append(k)
    return applied


def apply_conf_path(conf: Section, name_parts, target):
    section = fetch_conf_path(conf, name_parts)
    return apply_conf(section, target) if section else []


def configure_module(module, config_name=None, directory=None):
    """
    Applies configuration to the module-level attributes of the given module.

    The values are read from the section whose path matches the module name, so
    simconnect.settings is configured from [simconnect] [[settings]].
    The configuration files are named after the module and live beside it unless a
    directory is given.
    """
    name_parts = module.__name__.split('.')
    if not config_name:
        config_name = name_parts[-1]
    if directory is None:
        directory = os.path.dirname(module.__file__)
    conf = load_config(config_name, directory)
    applied = apply_conf_path(conf, name_parts, module)
    logger.debug("configured %s: %s" % (module.__name__, ', '.join(applied)))
    return applied
