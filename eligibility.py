from collections import namedtuple

NOT_ON_WHITELIST = 'not on whitelist'
ALREADY_MINTED = 'already minted'

Eligibility = namedtuple('Eligibility', ['eligible', 'reason'])


def evaluate(wallet, whitelist, minted):
    if wallet not in whitelist:
        return Eligibility(False, NOT_ON_WHITELIST)
    if wallet in minted:
        return Eligibility(False, ALREADY_MINTED)
    return Eligibility(True, None)


def check_eligibility(store, wallet):
    """Evaluate against freshly loaded lists; nothing is cached between calls."""
    return evaluate(wallet, set(store.load_whitelist()), set(store.load_minted()))


def to_response(eligibility):
    if eligibility.eligible:
        return {'eligible': True}
    return {'eligible': False, 'reason': eligibility.reason}
