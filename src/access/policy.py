"""Who holds which capability."""

from typing import Iterable

from shared_types import Capability


class AccessPolicy:
    """Admins are fixed at construction; oracles live in the ledger."""

    def __init__(self, admins: Iterable[str] = ()):
        self.admins = frozenset(a for a in admins if a)

    def capabilities(self, identity: str, ledger) -> set[Capability]:
        caps = set()
        if identity in self.admins:
            caps.add(Capability.ADMIN)
        if ledger.is_oracle(identity):
            caps.add(Capability.ORACLE)
        return caps

    def allows(self, identity: str, capability: Capability, ledger) -> bool:
        if capability == Capability.ADMIN:
            return identity in self.admins
        return capability in self.capabilities(identity, ledger)
