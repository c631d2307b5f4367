"""Side-by-side comparison of chain and ledger state for one moment"""
import logging
from typing import Any, Dict

from moment_editions.exceptions import ChainUnavailableError
from moment_editions.services.chain import ChainGateway
from moment_editions.services.ledger import EditionLedger

logger = logging.getLogger(__name__)

class EditionDiagnostics:
    """
    Inspects an edition without recording mints, faults or chain state.

    Reading the ledger still applies its lazy active to ended transition when
    the mint window has closed or the supply is exhausted.
    """

    def __init__(self, gateway: ChainGateway, ledger: EditionLedger):
        self.gateway = gateway
        self.ledger = ledger

    async def inspect(self, moment_id: str) -> Dict[str, Any]:
        edition = await self.ledger.get_edition(moment_id)
        mints = await self.ledger.list_mints(moment_id)

        chain: Dict[str, Any] = {'reachable': True}
        try:
            view = await self.gateway.get_edition(moment_id)
            chain['edition'] = None if view is None else {
                'metadataUri': view.metadata_uri,
                'price': str(view.price_wei),
                'mintStartTime': view.mint_start.isoformat() if view.mint_start else None,
                'mintEndTime': view.mint_end.isoformat() if view.mint_end else None,
                'maxSupply': view.max_supply,
                'rarity': view.rarity,
                'creationTxHash': view.creation_tx_hash,
            }
            chain['isActive'] = await self.gateway.is_active(moment_id)
            chain['totalMinted'] = await self.gateway.total_minted(moment_id)
        except ChainUnavailableError as e:
            logger.warning(f"Diagnostics could not reach the chain for moment {moment_id}: {e}")
            chain = {'reachable': False, 'error': str(e)}

        ledger = None
        if edition is not None:
            ledger = {
                'status': edition.status.value,
                'mintedCount': edition.minted_count,
                'recordedQuantity': edition.recorded_quantity,
                'chainMintedCount': edition.chain_minted_count,
                'creationTxHash': edition.creation_tx_hash,
                'lastReconciledAt': edition.last_reconciled_at.isoformat() if edition.last_reconciled_at else None,
                'mints': [
                    {'txHash': m.tx_hash, 'minter': m.minter_address, 'quantity': m.quantity}
                    for m in mints
                ],
            }

        in_sync = None
        if chain.get('reachable'):
            has_chain = chain.get('edition') is not None
            has_ledger = edition is not None and edition.exists
            in_sync = has_chain == has_ledger and (
                not has_chain or edition.minted_count == chain.get('totalMinted')
            )

        return {'momentId': moment_id, 'chain': chain, 'ledger': ledger, 'inSync': in_sync}
