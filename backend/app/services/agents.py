"""
Agent catalog — the fixed set of art appreciation personas.

Each agent is a display name (the key the frontend sends) backed by a bot id
on the chat platform. The catalog is loaded once from settings and never
mutated at runtime.
"""

from dataclasses import dataclass

from app.services.errors import DuplicateAgentError, EmptyAgentSetError, UnknownAgentError


@dataclass(frozen=True)
class Agent:
    display_name: str
    bot_id: str


class AgentCatalog:
    """Lookup table from display name to Agent."""

    def __init__(self, bot_ids: dict[str, str]):
        self._agents = {
            name: Agent(display_name=name, bot_id=bot_id)
            for name, bot_id in bot_ids.items()
        }

    def __contains__(self, name: str) -> bool:
        return name in self._agents

    def __len__(self) -> int:
        return len(self._agents)

    @property
    def names(self) -> list[str]:
        return list(self._agents)

    def get(self, name: str) -> Agent:
        agent = self._agents.get(name)
        if agent is None:
            raise UnknownAgentError(name)
        return agent

    def resolve(self, names: list[str]) -> list[Agent]:
        """
        Validate a requested agent set, keeping the request order.

        Raises:
            EmptyAgentSetError: no names given
            UnknownAgentError: first name missing from the catalog
            DuplicateAgentError: a name is requested twice
        """
        if not names:
            raise EmptyAgentSetError()
        agents = []
        seen = set()
        for name in names:
            if name in seen:
                raise DuplicateAgentError(name)
            seen.add(name)
            agents.append(self.get(name))
        return agents
