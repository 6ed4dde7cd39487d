import datetime
import logging
import logging.config as cfg
import os
import re
import sys

import yaml

_default_config = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))),
                               "config", "logger_config.yml")


class TimeFilter(logging.Filter):

    def filter(self, record: logging.LogRecord) -> bool:
        record.time_filter = datetime.datetime.now().strftime("%Y-%m-%d %H:%M:%S.%f")
        return True


def build_log_folder(path_log_folder):
    if not os.path.exists(os.path.abspath(path_log_folder)):
        os.makedirs(os.path.abspath(path_log_folder))


def init(path_config=None, folder_log=None, log_level=logging.WARNING):
    # Pull in Logging Config
    path = os.path.join(path_config or _default_config)
    folder_log = folder_log or os.path.join(os.getcwd(), "log")
    build_log_folder(folder_log)
    folder_log = os.path.abspath(os.sep.join([folder_log, "cofi.log"]))
    pattern = re.compile(r'.*?\${(\w+)}.*?')

    class _Loader(yaml.SafeLoader):
        pass

    _Loader.add_implicit_resolver('!CUSTOM', pattern, None)

    def constructor_env_variables(loader, node):
        """
        Replaces the placeholders of the node's value with the log file path
        :param yaml.Loader loader: the yaml loader
        :param node: the current node in the yaml
        :return: the parsed string with the log file path in place of the placeholders
        """
        value = loader.construct_scalar(node)
        match = pattern.findall(value)
        if match:
            full_value = value
            for g in match:
                full_value = full_value.replace(
                    f'${{{g}}}', folder_log
                )
            return full_value
        return value

    _Loader.add_constructor('!CUSTOM', constructor_env_variables)

    with open(path, 'r') as stream:
        logging_config = yaml.load(stream, Loader=_Loader)

    # Load Logging configs
    cfg.dictConfig(logging_config)

    # Initialize Log Levels
    loggers = {name: logging.getLogger(name) for name in logging.root.manager.loggerDict}
    for _, log in loggers.items():
        log.setLevel(log_level)
    return folder_log


def get_logger(name, log_level=logging.DEBUG):
    logger = logging.getLogger(name)
    logger.setLevel(log_level)
    return logger


def prepare_logger(name, path, log_level=logging.DEBUG):
    build_log_folder(path)
    logger = logging.getLogger(name)
    logger.addFilter(TimeFilter())
    logger.setLevel(log_level)
    logfilepath = os.path.abspath(os.sep.join([path, f"{name}-{datetime.datetime.now().strftime('%b-%d-%Y_%H-%M-%S')}.log"]))
    fh = logging.FileHandler(logfilepath)
    sh = logging.StreamHandler(sys.stdout)
    fh.setLevel(log_level)
    sh.setLevel(log_level)
    filefmt = "%(time_filter)-15s: %(levelname)-.1s %(message)s"
    formatter = logging.Formatter(filefmt)
    fh.setFormatter(formatter)
    sh.setFormatter(formatter)
    logger.addHandler(fh)
    logger.addHandler(sh)
    return logger
