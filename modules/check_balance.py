import asyncio
import logging

import questionary as q
from rich.console import Console
from rich.logging import RichHandler

from core.controller import BulkTransferController
from core.errors import BulkTransferError, QueryError, WalletConnectionError
from utils.helper import LedgerClient, MetadataFetcher, FileHelper, select_chain_config, select_private_key

console = Console()


class BalanceChecker:
    """
    Check the connected wallet's balance of one ERC-1155 token id.
    - The signing key comes from PRIVATE_KEY, chain_config.WALLET_FILE or a CLI paste
    - Shows balance, token uri, resolved image and the OpenSea page
    - Metadata problems are logged and never stop the balance display
    """
    def __init__(self, chain_config):
        self.console = console
        self.chain_config = chain_config

        logging.basicConfig(level=logging.INFO, handlers=[RichHandler(console=self.console)])
        self.logger = logging.getLogger(__name__)

        try:
            FileHelper.ensure_placeholder(chain_config.WALLET_FILE, 'wallets')
        except OSError as e:
            self.console.log(f"[yellow]Could not ensure placeholder wallet file: {e}[/yellow]")

        self.ledger = LedgerClient(chain_config, private_key=select_private_key(chain_config))
        self.controller = BulkTransferController(
            self.ledger, MetadataFetcher(), opensea_slug=chain_config.OPENSEA_SLUG,
        )

    async def connect(self) -> bool:
        try:
            await self.controller.connect()
        except WalletConnectionError as e:
            self.console.log(f"[bold red]{e}[/bold red]")
            return False
        self.console.log(f"[green]{self.controller.short_account}[/green] | Network: {self.controller.network_name}")
        return True

    def select_token(self) -> bool:
        contract = (q.text("NFT contract address:").ask() or "").strip()
        token_id = (q.text("Token ID:", default="0").ask() or "").strip()
        try:
            self.controller.set_token(contract, token_id)
        except ValueError as e:
            self.console.log(f"[red]Invalid token: {e}[/red]")
            return False
        return True

    async def show_balance(self) -> bool:
        self.console.rule("[bold cyan]Checking NFT balance")
        try:
            balance = await self.controller.check_balance()
        except QueryError as e:
            self.console.log(f"[bold red]{e}[/bold red]")
            return False

        self.console.print(f"[bold]Available Balance:[/bold] {balance} tokens")
        meta = self.controller.metadata
        if meta:
            self.console.print(f"[bold]Token URI:[/bold] {meta.uri}")
            if meta.image_url:
                self.console.print(f"[bold]Image:[/bold] {meta.image_url}")
        if balance > 0:
            self.console.print(f"[bold]View on OpenSea:[/bold] {self.controller.opensea_url}")
        return True

    async def run_async(self):
        if not await self.connect():
            return
        if not self.select_token():
            return
        await self.show_balance()

    def run(self):
        try:
            asyncio.run(self.run_async())
        except BulkTransferError as e:
            self.console.log(f"[bold red]{e}[/bold red]")


def main():
    app = BalanceChecker(select_chain_config())
    app.run()

if __name__ == "__main__":
    main()
