"""Ledger contract capability and its HTTP relay adapter"""
import abc
import asyncio
import datetime
import logging
import time
from typing import Any, Dict, Optional

import requests
from urllib3.exceptions import MaxRetryError, NewConnectionError

from moment_editions.exceptions import (
    ChainRejectedError,
    ChainUnavailableError,
    TransactionIndeterminateError,
    WalletDeclinedError,
)
from moment_editions.models.edition import EditionView, ReceiptStatus, TxReceipt

logger = logging.getLogger(__name__)

# EIP-1193 "user rejected request"
USER_REJECTED_CODE = 4001
# EIP-1474 "execution reverted"
EXECUTION_REVERTED_CODE = 3

# Contract methods named in decoded receipts
CREATE_EDITION_METHOD = 'createEdition'
MINT_METHOD = 'mint'

RETRY_BASE_DELAY = 1.0
REQUEST_TIMEOUT_SECONDS = 15

class ChainGateway(abc.ABC):
    """
    Capability interface of the edition contract.

    Write calls return a transaction hash as soon as the transaction is
    broadcast; confirmation is observed separately through get_receipt().
    Declined signatures raise WalletDeclinedError, pre-flight contract
    rejections raise ChainRejectedError.
    """

    contract_address: str

    @abc.abstractmethod
    async def create_edition(self, moment_id: str, metadata_uri: str, price_wei: int,
                             duration_seconds: int, max_supply: int,
                             revenue_split_target: str, rarity: int) -> str:
        ...

    @abc.abstractmethod
    async def mint(self, moment_id: str, quantity: int, payment_value: int,
                   minter: Optional[str] = None) -> str:
        ...

    @abc.abstractmethod
    async def get_edition(self, moment_id: str) -> Optional[EditionView]:
        ...

    @abc.abstractmethod
    async def is_active(self, moment_id: str) -> bool:
        ...

    @abc.abstractmethod
    async def total_minted(self, moment_id: str) -> int:
        ...

    @abc.abstractmethod
    async def get_receipt(self, tx_hash: str) -> Optional[TxReceipt]:
        """Receipt of a mined transaction, None while unknown or pending"""
        ...

def _from_unix(value: Any) -> Optional[datetime.datetime]:
    if value is None:
        return None
    try:
        return datetime.datetime.fromtimestamp(int(value), tz=datetime.UTC)
    except (TypeError, ValueError, OverflowError):
        logger.warning(f"Could not parse timestamp value: {value}")
        return None

def _never_connected(error: requests.exceptions.RequestException) -> bool:
    """True when the request failed before a connection to the relay was made"""
    if isinstance(error, requests.exceptions.ConnectTimeout):
        return True
    if not isinstance(error, requests.exceptions.ConnectionError):
        return False
    reason = error.args[0] if error.args else None
    if isinstance(reason, MaxRetryError):
        reason = reason.reason
    return isinstance(reason, NewConnectionError)

def parse_edition(data: Dict[str, Any], contract_address: Optional[str] = None) -> EditionView:
    """Build an EditionView from the relay's JSON representation"""
    return EditionView(
        moment_id=str(data['momentId']),
        metadata_uri=data.get('metadataUri') or '',
        price_wei=int(data.get('priceWei') or 0),
        mint_start=_from_unix(data.get('mintStart')),
        mint_end=_from_unix(data.get('mintEnd')),
        max_supply=int(data.get('maxSupply') or 0),
        total_minted=int(data.get('totalMinted') or 0),
        rarity=int(data.get('rarity') or 1),
        revenue_split_target=data.get('revenueSplitTarget'),
        contract_address=data.get('contractAddress') or contract_address,
        creation_tx_hash=data.get('creationTxHash')
    )

def parse_receipt(data: Dict[str, Any]) -> TxReceipt:
    """Build a TxReceipt from the relay's JSON representation"""
    raw_status = data.get('status')
    succeeded = raw_status in (1, '1', '0x1', 'success', 'confirmed', True)
    quantity = data.get('quantity')
    return TxReceipt(
        tx_hash=data['txHash'],
        status=ReceiptStatus.CONFIRMED if succeeded else ReceiptStatus.REVERTED,
        block_number=data.get('blockNumber'),
        confirmed_at=_from_unix(data.get('timestamp')),
        revert_reason=data.get('revertReason'),
        moment_id=data.get('momentId'),
        method=data.get('method'),
        quantity=int(quantity) if quantity is not None else None,
        minter=data.get('minter')
    )

class RelayChainGateway(ChainGateway):
    """
    ChainGateway backed by a transaction relay that holds the contract ABI
    and signer, exposed as a small JSON API:

        POST /editions                          -> {"txHash"}
        POST /editions/{momentId}/mints         -> {"txHash"}
        GET  /editions/{momentId}               -> edition | 404
        GET  /editions/{momentId}/active        -> {"active"}
        GET  /editions/{momentId}/total-minted  -> {"totalMinted"}
        GET  /transactions/{txHash}/receipt     -> receipt | 404

    Errors use the wallet error shape {"error": {"code", "message"}}.
    Reads are retried; writes are sent once, since a resend could
    broadcast a second transaction.
    """

    def __init__(self, base_url: str, contract_address: str, api_key: Optional[str] = None,
                 retries: int = 3, timeout: float = REQUEST_TIMEOUT_SECONDS):
        if not base_url:
            raise ValueError("Relay base URL cannot be empty")
        self.base_url = base_url.rstrip('/')
        self.contract_address = contract_address
        self.retries = retries
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({'Accept': 'application/json'})
        if api_key:
            self.session.headers.update({'Authorization': f'Bearer {api_key}'})

    async def create_edition(self, moment_id: str, metadata_uri: str, price_wei: int,
                             duration_seconds: int, max_supply: int,
                             revenue_split_target: str, rarity: int) -> str:
        payload = {
            'momentId': moment_id,
            'metadataUri': metadata_uri,
            'priceWei': str(price_wei),
            'durationSeconds': duration_seconds,
            'maxSupply': max_supply,
            'revenueSplitTarget': revenue_split_target,
            'rarity': rarity,
        }
        response = await asyncio.to_thread(self._send_transaction, 'editions', payload)
        return response['txHash']

    async def mint(self, moment_id: str, quantity: int, payment_value: int,
                   minter: Optional[str] = None) -> str:
        payload = {'quantity': quantity, 'paymentValue': str(payment_value), 'minter': minter}
        response = await asyncio.to_thread(self._send_transaction, f'editions/{moment_id}/mints', payload)
        return response['txHash']

    async def get_edition(self, moment_id: str) -> Optional[EditionView]:
        data = await asyncio.to_thread(self._get, f'editions/{moment_id}')
        if data is None:
            return None
        return parse_edition(data, self.contract_address)

    async def is_active(self, moment_id: str) -> bool:
        data = await asyncio.to_thread(self._get, f'editions/{moment_id}/active')
        return bool(data and data.get('active'))

    async def total_minted(self, moment_id: str) -> int:
        data = await asyncio.to_thread(self._get, f'editions/{moment_id}/total-minted')
        return int((data or {}).get('totalMinted') or 0)

    async def get_receipt(self, tx_hash: str) -> Optional[TxReceipt]:
        data = await asyncio.to_thread(self._get, f'transactions/{tx_hash}/receipt')
        if data is None:
            return None
        return parse_receipt(data)

    @staticmethod
    def _error_of(response: requests.Response) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            return {'message': response.text[:200]}
        error = body.get('error') if isinstance(body, dict) else None
        if isinstance(error, dict):
            return error
        return {'message': str(error or body)}

    def _raise_for_wallet_error(self, response: requests.Response) -> None:
        error = self._error_of(response)
        code = error.get('code')
        message = error.get('message') or f"HTTP {response.status_code}"
        if code == USER_REJECTED_CODE:
            raise WalletDeclinedError(message)
        if code == EXECUTION_REVERTED_CODE or response.status_code in (409, 422):
            raise ChainRejectedError.from_revert_message(message)
        raise ChainUnavailableError(f"Relay error {response.status_code}: {message}")

    def _send_transaction(self, endpoint: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST a write call once. A lost response leaves the transaction indeterminate."""
        url = f'{self.base_url}/{endpoint}'
        try:
            logger.debug(f"Sending transaction request to {url}")
            response = self.session.post(url, json=payload, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            if _never_connected(e):
                logger.warning(f"Relay unreachable at {url}: {e}")
                raise ChainUnavailableError(str(e)) from e
            logger.warning(f"Lost relay response for {url}, transaction state unknown: {e}")
            raise TransactionIndeterminateError(None, str(e)) from e

        if response.status_code >= 400:
            self._raise_for_wallet_error(response)
        try:
            body = response.json()
        except ValueError as e:
            raise TransactionIndeterminateError(None, f"Unreadable relay response from {url}") from e
        if not isinstance(body, dict) or not body.get('txHash'):
            raise TransactionIndeterminateError(None, f"Relay response from {url} has no txHash")
        logger.info(f"Transaction broadcast via relay: {body['txHash']}")
        return body

    def _get(self, endpoint: str) -> Optional[Dict[str, Any]]:
        """GET with retries. Returns None on 404."""
        url = f'{self.base_url}/{endpoint}'
        attempt = 0
        last_exception = None

        while attempt < self.retries:
            attempt += 1
            try:
                logger.debug(f"Attempt {attempt}/{self.retries}: Making request to {url}")
                response = self.session.get(url, timeout=self.timeout)
                if response.status_code == 404:
                    return None
                response.raise_for_status()
                try:
                    body = response.json()
                except ValueError:
                    logger.error(f"Failed to decode JSON response from {url}. Response text: {response.text[:200]}")
                    raise ChainUnavailableError(f"Unreadable relay response from {url}")
                return body if isinstance(body, dict) else {}
            except requests.exceptions.HTTPError as e:
                last_exception = e
                status = e.response.status_code
                if status == 429 or status >= 500:
                    logger.warning(f"Relay error ({status}) for {url}. Retrying...")
                else:
                    logger.error(f"Client error ({status}) for {url}. Aborting request.")
                    raise ChainUnavailableError(f"Relay rejected read {url}: {status}") from e
            except requests.exceptions.RequestException as e:
                last_exception = e
                logger.warning(f"Request Error on attempt {attempt} for {url}: {e}. Retrying...")
            if attempt < self.retries:
                sleep_time = RETRY_BASE_DELAY * (1.5 ** (attempt - 1))
                logger.info(f"Waiting {sleep_time:.2f}s before next retry for {url}...")
                time.sleep(sleep_time)

        logger.error(f"Request failed after {self.retries} attempts for {url}.")
        raise ChainUnavailableError(f"Relay read failed after {self.retries} attempts: {last_exception}")
