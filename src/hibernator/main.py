#!/usr/bin/env python

from hibernator.hibernate_enabler import HibernateEnabler
from zenlib.util import get_args_n_logger, get_kwargs_from_args

ARGUMENTS = [{'flags': ['-c', '--config'], 'action': 'store', 'help': 'set the config file location'},
             {'flags': ['-m', '--modules'], 'action': 'store', 'help': 'Define additional config modules to load, comma separated'},
             {'flags': ['--swap-path'], 'action': 'store', 'help': 'set the swap subvolume path'},
             {'flags': ['--swap-file'], 'action': 'store', 'help': 'set the swap file path, must be inside the swap path'},
             {'flags': ['--swap-size'], 'action': 'store', 'type': int, 'help': 'set the swap file size in GiB, instead of calculating it'},
             {'flags': ['--swap-buffer'], 'action': 'store', 'type': int, 'help': 'GiB added to the installed memory size', 'dest': 'swap_size_buffer'},
             {'flags': ['--hibernate-delay'], 'action': 'store', 'help': 'time spent suspended before hibernating, such as 60m'},
             {'flags': ['--hibernate-mode'], 'action': 'store', 'help': 'set the HibernateMode used by systemd-sleep'},
             {'flags': ['--lid-switch-action'], 'action': 'store', 'help': 'set the logind lid switch action'},
             {'flags': ['--selinux-module'], 'action': 'store', 'help': 'set the SELinux policy module name', 'dest': 'selinux_module_name'},
             {'flags': ['--print-config'], 'action': 'store_true', 'help': 'print the final config dict'}]


def main():
    args, logger = get_args_n_logger(package=__package__, description='Hibernation provisioning for atomic btrfs hosts', arguments=ARGUMENTS, drop_default=True)
    kwargs = get_kwargs_from_args(args, logger=logger)
    kwargs.pop('print_config', None)  # This is not a valid kwarg for HibernateEnabler

    logger.debug(f"Using the following kwargs: {kwargs}")
    enabler = HibernateEnabler(**kwargs)

    try:
        enabler.run()
    except Exception as e:
        logger.info("Dumping config dict:\n")
        print(enabler.config_dict)
        logger.error("[%s] %s" % (enabler.failed_stage, e), exc_info=True)
        exit(1)

    if 'print_config' in args and args.print_config:
        print(enabler.config_dict)


if __name__ == '__main__':
    main()
