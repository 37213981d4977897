from __future__ import annotations

from typing import Any, Dict, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

FeedRoleName = Literal["read", "edit", "admin"]
UploadPurpose = Literal["feed_cover", "feed_file", "avatar"]


class FeedCreateReq(BaseModel):
    title: Optional[str] = None
    # opaque editor payload
    content: Any = None
    type: Optional[str] = None
    language: Optional[str] = None
    public: bool = False
    meta: Optional[Dict[str, Any]] = None


class FeedUpdateReq(BaseModel):
    title: Optional[str] = None
    content: Any = None
    type: Optional[str] = None
    language: Optional[str] = None
    public: Optional[bool] = None
    meta: Optional[Dict[str, Any]] = None


class CollaboratorAddReq(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    user_id: str = Field(validation_alias=AliasChoices("user_id", "userId"))
    role: FeedRoleName = "read"


class CollaboratorRoleReq(BaseModel):
    role: FeedRoleName


class CommentCreateReq(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    content: str
    parent_comment_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("parent_comment_id", "parentCommentId")
    )


class CommentUpdateReq(BaseModel):
    content: str


class UploadUrlReq(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    purpose: UploadPurpose
    mime_type: str = Field(validation_alias=AliasChoices("mime_type", "content_type", "mimeType"))
    size: int = Field(ge=0, validation_alias=AliasChoices("size", "file_size", "fileSize"))
    feed_id: Optional[str] = None


class ObjectKeyReq(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    object_key: str = Field(validation_alias=AliasChoices("object_key", "key"))


class FeedFileReq(ObjectKeyReq):
    file_name: Optional[str] = None
