from typing import Any, Sequence

from eth_account.messages import encode_defunct
from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.contract.contract import Contract

from errors import SDKError
from models import FusionQuote, Instruction


class SmartAccount:
    """
    Delegated smart account bound to the session signer.

    The account is the signer's own address with smart-account code delegated
    to it, so calls are built against ``signer.address`` and quotes are
    authorised with the signer's key.
    """

    def __init__(self, signer: LocalAccount, chain_id: int):
        self.signer = signer
        self.chain_id = chain_id

    @property
    def address(self) -> str:
        return self.signer.address

    def build_instruction(
        self,
        contract: Contract,
        function_name: str,
        args: Sequence[Any],
        value: int = 0,
    ) -> Instruction:
        try:
            calldata = getattr(contract.functions, function_name)(*args)._encode_transaction_data()
        except (AttributeError, TypeError, ValueError) as e:
            raise SDKError(f"Cannot build '{function_name}' call for {contract.address}: {e}", e) from e
        return Instruction(
            to=contract.address,
            function_name=function_name,
            args=tuple(args),
            data=Web3.to_hex(hexstr=calldata) if isinstance(calldata, str) else Web3.to_hex(calldata),
            chain_id=self.chain_id,
            value=value,
        )

    def sign_quote(self, quote: FusionQuote) -> str:
        signed = self.signer.sign_message(encode_defunct(hexstr=quote.hash))
        return Web3.to_hex(signed.signature)
