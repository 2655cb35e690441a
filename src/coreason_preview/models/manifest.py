from pydantic import BaseModel, ConfigDict, Field


class Manifest(BaseModel):
    """A package manifest (``package.json``) as authored by the user or an LLM.

    Unknown top-level keys are preserved so that a merged manifest keeps whatever the
    generator put there.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: str | None = None
    type: str | None = None
    scripts: dict[str, str] = Field(default_factory=dict)
    dependencies: dict[str, str] = Field(default_factory=dict)
    dev_dependencies: dict[str, str] = Field(default_factory=dict, alias="devDependencies")

    def dump(self) -> dict[str, object]:
        data = self.model_dump(by_alias=True, exclude_none=True)
        if not data.get("devDependencies"):
            data.pop("devDependencies", None)
        return data
