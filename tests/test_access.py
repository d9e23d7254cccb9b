from nexusnode.access import check_gateway_access

WALLET = "0x" + "ab" * 20


def test_wildcard_allows_anything(monkeypatch):
    monkeypatch.setenv("GATEWAY_WALLET", "*")
    assert check_gateway_access(WALLET) is True
    assert check_gateway_access(None) is True


def test_matching_wallet(monkeypatch):
    monkeypatch.setenv("GATEWAY_WALLET", WALLET)
    assert check_gateway_access(WALLET) is True


def test_other_wallet_rejected(monkeypatch):
    monkeypatch.setenv("GATEWAY_WALLET", WALLET)
    assert check_gateway_access("0x" + "cd" * 20) is False


def test_non_string_rejected(monkeypatch):
    monkeypatch.setenv("GATEWAY_WALLET", WALLET)
    assert check_gateway_access(42) is False


def test_unset_allows_only_empty(monkeypatch):
    monkeypatch.delenv("GATEWAY_WALLET", raising=False)
    assert check_gateway_access("") is True
    assert check_gateway_access(WALLET) is False