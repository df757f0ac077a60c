from typing import Annotated

from pydantic import BaseModel, ConfigDict, EmailStr, Field


# --- User ---

class UserRegistration(BaseModel):
    username: str = Field(min_length=1, max_length=64)
    email: EmailStr
    password: str = Field(min_length=8, max_length=64)


class UserLogin(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)


class UserUpdate(BaseModel):
    # Omitted or null fields keep their stored value.
    bio: str | None = None
    image: str | None = None
    email: EmailStr | None = None
    username: str | None = Field(None, min_length=1, max_length=64)
    password: str | None = Field(None, min_length=8, max_length=64)


class RegisterRequest(BaseModel):
    user: UserRegistration


class LoginRequest(BaseModel):
    user: UserLogin


class UpdateUserRequest(BaseModel):
    user: UserUpdate


# --- Article ---

TagName = Annotated[str, Field(min_length=1, max_length=100)]


class ArticleCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str = Field(min_length=1)
    body: str = Field(min_length=1)
    tag_list: list[TagName] = Field(default_factory=list, alias="tagList")
    model_config = ConfigDict(populate_by_name=True)


class ArticleUpdate(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = Field(None, min_length=1)
    body: str | None = Field(None, min_length=1)
    # When present the whole tag set is replaced.
    tag_list: list[TagName] | None = Field(None, alias="tagList")
    model_config = ConfigDict(populate_by_name=True)


class CreateArticleRequest(BaseModel):
    article: ArticleCreate


class UpdateArticleRequest(BaseModel):
    article: ArticleUpdate


# --- Comment ---

class CommentCreate(BaseModel):
    body: str = Field(min_length=1)


class CreateCommentRequest(BaseModel):
    comment: CommentCreate
