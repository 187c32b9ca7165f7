# main_runner.py
import os
import logging
import importlib.util

import questionary
from rich.console import Console
from rich.logging import RichHandler

from config import MODULE_PATH

console = Console()
logger = logging.getLogger(__name__)


def list_task_modules(module_dir=MODULE_PATH):
    """Task scripts in modules/, sorted, without private helpers."""
    if not os.path.isdir(module_dir):
        return []
    return sorted(f for f in os.listdir(module_dir) if f.endswith('.py') and not f.startswith('_'))


def task_title(fname: str) -> str:
    # check_balance.py -> "Check Balance"
    return os.path.splitext(fname)[0].replace('_', ' ').title()


def load_and_run_module(module_path):
    """
    Load a task module from the given path and run its main function.
    """
    module_name = os.path.basename(module_path).replace('.py', '')
    spec = importlib.util.spec_from_file_location(module_name, module_path)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)

    if hasattr(module, 'main'):
        module.main()
    else:
        console.log(f"[yellow]No main() function found in {module_name}. Skipping...[/yellow]")


def run_selected_module():
    """
    Let the operator pick a task (balance check or bulk transfer) and run it.
    """
    python_files = list_task_modules()
    if not python_files:
        console.log(f"[red]No task modules found in '{MODULE_PATH}'.[/red]")
        return

    choices = [
        questionary.Choice(title=f"{idx + 1}. {task_title(fname)}", value=fname)
        for idx, fname in enumerate(python_files)
    ]
    selected_file = questionary.select("Select the task you want to run:", choices=choices).ask()
    if not selected_file:
        console.log("No task selected.")
        return

    module_path = os.path.join(MODULE_PATH, selected_file)
    try:
        load_and_run_module(module_path)
    except Exception:
        logger.exception("Error running %s", module_path)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, handlers=[RichHandler(console=console)])
    run_selected_module()
