import importlib
import pkgutil

from click.core import Command, Group

import ctffit.commands


def main_entry():
    main = Group(chain=False)

    for _, modname, _ in pkgutil.iter_modules(ctffit.commands.__path__):
        module = importlib.import_module(f"ctffit.commands.{modname}")
        commands = [v for v in module.__dict__.values() if isinstance(v, Command)]
        for command in commands:
            main.add_command(command)

    main.main(prog_name="ctffit")


if __name__ == "__main__":
    main_entry()
