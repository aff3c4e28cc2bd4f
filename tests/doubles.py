"""Hand-rolled stand-ins for web3 contracts, providers and the Anvil fork."""

ANVIL_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
WALLET = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"

BASE_ENV = {
    "MEE_NODE_URL": "http://localhost:3000/v3/",
    "ETH_MAINNET_RPC_URL": "https://eth-mainnet.example/v2/key",
    "TEST_PRIVATE_KEY": ANVIL_KEY,
}


class DummyCall:
    def __init__(self, value):
        self.value = value

    def call(self):
        if isinstance(self.value, Exception):
            raise self.value
        return self.value


class DummyTransfer:
    def __init__(self, token, to, amount):
        self.token = token
        self.to = to
        self.amount = amount

    def transact(self, opts):
        self.token.transfers.append((opts["from"], self.to, self.amount))
        if self.token.transfer_error is not None:
            raise self.token.transfer_error
        sender = opts["from"].lower()
        self.token.balances[sender] = self.token.balances.get(sender, 0) - self.amount
        if self.token.credit_transfers:
            self.token.balances[self.to.lower()] = self.token.balances.get(self.to.lower(), 0) + self.amount
        return b"\x11" * 32


class DummyFunctions:
    def __init__(self, token):
        self.token = token

    def balanceOf(self, address):
        self.token.balance_reads.append(address)
        return DummyCall(self.token.balances.get(address.lower(), 0))

    def transfer(self, to, amount):
        return DummyTransfer(self.token, to, amount)


class DummyToken:
    """ERC20 stand-in keyed by lowercase address; a balance may be an Exception to fail the read."""

    def __init__(self, balances=None, address="0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"):
        self.address = address
        self.balances = {k.lower(): v for k, v in (balances or {}).items()}
        self.balance_reads = []
        self.transfers = []
        self.transfer_error = None
        self.credit_transfers = True
        self.functions = DummyFunctions(self)


class DummyProvider:
    def __init__(self, fail_methods=()):
        self.requests = []
        self.fail_methods = set(fail_methods)

    def make_request(self, method, params):
        self.requests.append((method, params))
        if method in self.fail_methods:
            return {"jsonrpc": "2.0", "id": 1, "error": {"code": -32000, "message": f"{method} unsupported"}}
        return {"jsonrpc": "2.0", "id": 1, "result": None}

    @property
    def methods(self):
        return [m for m, _ in self.requests]


class DummyEth:
    def __init__(self):
        self.receipt = {"status": 1, "gasUsed": 51000}
        self.block_number = 19_000_000
        self.tx_receipts = {}

    def wait_for_transaction_receipt(self, tx_hash, timeout=None):
        return self.receipt

    def get_transaction_receipt(self, tx_hash):
        if tx_hash not in self.tx_receipts:
            raise ValueError(f"unknown transaction {tx_hash}")
        return self.tx_receipts[tx_hash]


class DummyWeb3:
    def __init__(self, provider=None):
        self.eth = DummyEth()
        self.provider = provider or DummyProvider()

