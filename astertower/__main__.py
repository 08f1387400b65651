"""
CLI entry point, when used as a module: `python -m astertower`.

Useful for debugging in the IDEs (use the start-mode "Module", module "astertower").
"""
from astertower import cli

if __name__ == '__main__':
    cli.main()
