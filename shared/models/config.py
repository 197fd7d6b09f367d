from pydantic import BaseModel


class EnvConfig(BaseModel):
    """
    A single environment setting a client needs.

    Attributes:
        env_key (str): Raw key of the variable; clients prefix it with "<TYPE>_<ENGINE>_".
        val_type (str): Expected type of the value. One of "string", "number", "bool", "list".
        default (str | int | float | bool | list | None): Value used when the variable is unset. None marks the key as required.
        description (str | None): Short explanation shown when the key is missing.
    """

    env_key: str
    val_type: str = "string"
    default: str | int | float | bool | list | None = None
    description: str | None = None

    @property
    def is_required(self) -> bool:
        return self.default is None
