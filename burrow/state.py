"""The accumulator threaded through the profile loader and capability bundles."""

from dataclasses import dataclass, field


@dataclass
class PolicyState:
    """Paths, environment names and raw bwrap arguments collected so far.

    ``rw`` and ``ro`` are kept as insertion-ordered lists; duplicates are
    allowed here and removed by the assembler. A path may sit in both.
    """
    rw: list = field(default_factory=list)
    ro: list = field(default_factory=list)
    env: list = field(default_factory=list)
    args: list = field(default_factory=list)

    def add_rw(self, *paths: str) -> "PolicyState":
        self.rw.extend(paths)
        return self

    def add_ro(self, *paths: str) -> "PolicyState":
        self.ro.extend(paths)
        return self

    def add_env(self, *names: str) -> "PolicyState":
        for name in names:
            if name not in self.env:
                self.env.append(name)
        return self

    def add_args(self, *args: str) -> "PolicyState":
        self.args.extend(args)
        return self

    def remove_arg(self, flag: str) -> "PolicyState":
        """Drop every occurrence of a flag that takes no value."""
        self.args = [a for a in self.args if a != flag]
        return self

    def copy(self) -> "PolicyState":
        return PolicyState(
            rw=list(self.rw), ro=list(self.ro),
            env=list(self.env), args=list(self.args),
        )
