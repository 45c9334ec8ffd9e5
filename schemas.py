from typing import Dict

from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt, model_validator

# Schema for a task, used both as the request body and the stored record.
# Records are frozen; the store hands out the instances it holds.
class Task(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: NonNegativeInt
    name: str
    completed: bool

# Schema for a registered user. The password is kept as plain text.
class User(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: NonNegativeInt
    username: str
    password: str

# Schema for a user login. Clients may send the whole user record,
# so anything besides the credentials is ignored.
class LoginRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    username: str
    password: str = ""

# Schema for the file written by the persistence layer.
# JSON object keys are strings; pydantic turns them back into ints.
class Snapshot(BaseModel):
    tasks: Dict[int, Task] = Field(default_factory=dict)
    users: Dict[int, User] = Field(default_factory=dict)

    @model_validator(mode="after")
    def keys_match_ids(self):
        for key, task in self.tasks.items():
            if key != task.id:
                raise ValueError(f"task stored under key {key} has id {task.id}")
        for key, user in self.users.items():
            if key != user.id:
                raise ValueError(f"user stored under key {key} has id {user.id}")
        return self
