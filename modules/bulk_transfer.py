from typing import Optional

import questionary
from rich.progress import Progress, BarColumn, TimeElapsedColumn, TimeRemainingColumn

from core.errors import EmptyRecipientList, InsufficientBalance, InvalidAmount
from core.models import BatchOutcome, SessionResult, TransferSession
from modules.check_balance import BalanceChecker
from utils.helper import FileHelper, load_recipients_cli, load_recipients_file, select_chain_config

PREVIEW_ROWS = 10


class BulkTransferManager(BalanceChecker):
    """Send the same amount of one ERC-1155 token id to every recipient, 50 per batch."""

    def __init__(self, chain_config):
        super().__init__(chain_config)
        self.receiver_file = chain_config.RECEIVERS_FILE
        try:
            FileHelper.ensure_placeholder(self.receiver_file, 'receivers')
        except OSError as e:
            self.console.log(f"[yellow]Could not ensure placeholder receivers file {self.receiver_file}: {e}[/yellow]")

    def select_receiver_input_method(self) -> str:
        choice = questionary.select(
            "Choose receiver input method:",
            choices=["Default Path (File)", "Manual Input (CLI)"]
        ).ask()
        if choice == "Default Path (File)":
            return load_recipients_file(self.receiver_file)
        return load_recipients_cli()

    def ask_amount(self) -> Optional[int]:
        raw = questionary.text("Amount per address:", default="1").ask()
        try:
            return int((raw or "").strip())
        except ValueError:
            self.console.log(f"[red]Invalid amount: {raw}[/red]")
            return None

    def preview(self, session: TransferSession) -> None:
        self.console.rule("[bold]Transfer Plan Preview[/bold]")
        self.console.print(f"[bold]Token Contract:[/bold] {session.token_ref.contract_address}")
        self.console.print(f"[bold]Token ID:[/bold] {session.token_ref.token_id}")
        self.console.print(f"[bold]Recipients:[/bold] {len(session.recipients)} in {len(session.batches)} batch(es)")
        self.console.print(f"[bold]Total Amount:[/bold] {session.total_amount} of {session.balance_snapshot}")
        for i, r in enumerate(session.recipients[:PREVIEW_ROWS], 1):
            self.console.print(f"{i:>3}. {r} | {session.amount_per_recipient}")
        if len(session.recipients) > PREVIEW_ROWS:
            self.console.print(f"... and {len(session.recipients) - PREVIEW_ROWS} more")

    def report(self, result: SessionResult) -> None:
        self.console.rule("[bold]Done[/bold]")
        total = sum(len(o.transfers) for o in result.outcomes)
        if result.all_succeeded:
            self.console.print("[bold green]Tokens sent successfully![/bold green]")
        else:
            self.console.print("[bold red]Error sending tokens.[/bold red]")
            self.console.print(f"[bold red]Failed batches:[/bold red] {', '.join(str(i + 1) for i in result.failed_batch_indices)}")
            for o in result.outcomes:
                if not o.confirmed:
                    self.console.print(f"  batch {o.index + 1}: {o.reason}")
            for r in result.failed_recipients:
                self.console.print(f"  [red]not confirmed:[/red] {r}")
        self.console.print(f"[bold green]Confirmed:[/bold green] {result.confirmed_transfers}/{total} transfers ({result.amount_sent} tokens)")
        if result.balance is None:
            self.console.print("[yellow]Balance refresh failed; check the balance again.[/yellow]")
        else:
            self.console.print(f"[bold]Available Balance:[/bold] {result.balance} tokens")

    async def run_async(self):
        if not await self.connect():
            return
        if not self.select_token():
            return
        if not await self.show_balance():
            return

        raw_text = self.select_receiver_input_method()
        amount = self.ask_amount()
        if amount is None:
            return
        try:
            session = self.controller.plan(raw_text, amount)
        except (EmptyRecipientList, InvalidAmount, InsufficientBalance) as e:
            self.console.log(f"[bold red]{e}[/bold red]")
            return

        self.preview(session)
        if not questionary.confirm("Proceed with these transfers?").ask():
            self.console.log("[yellow]Cancelled by user[/yellow]")
            return

        progress = Progress(
            "[progress.description]{task.description}",
            BarColumn(),
            "[progress.percentage]{task.percentage:>3.0f}%",
            "•",
            TimeElapsedColumn(),
            "•",
            TimeRemainingColumn(),
            console=self.console,
        )
        with progress:
            task = progress.add_task("[cyan]Transferring...", total=len(session.recipients))

            def on_batch(outcome: BatchOutcome) -> None:
                progress.advance(task, len(outcome.transfers))

            result = await self.controller.send_tokens(raw_text, amount, on_batch=on_batch)
        self.report(result)


def main():
    app = BulkTransferManager(select_chain_config())
    app.run()


if __name__ == "__main__":
    main()
