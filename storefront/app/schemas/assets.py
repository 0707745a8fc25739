from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field

from storefront.app.db.models.core_types import AssetKind


class CredentialAsset(BaseModel):
    kind: Literal[AssetKind.credential] = AssetKind.credential
    email: str = Field(min_length=1)
    password: str = Field(min_length=1)

    class Config:
        frozen = True

    def to_storage(self) -> dict:
        return {"email": self.email, "password": self.password}


class CodeAsset(BaseModel):
    kind: Literal[AssetKind.code] = AssetKind.code
    code: str = Field(min_length=1)

    class Config:
        frozen = True

    def to_storage(self) -> dict:
        return {"code": self.code}


Asset = Annotated[Union[CredentialAsset, CodeAsset], Field(discriminator="kind")]


def asset_columns(asset: CredentialAsset | CodeAsset | None) -> dict:
    """Colonnes digital_* d'une ligne de commande, exclusives selon la variante."""
    if isinstance(asset, CredentialAsset):
        return {"digital_email": asset.email, "digital_password": asset.password, "digital_code": None}
    if isinstance(asset, CodeAsset):
        return {"digital_email": None, "digital_password": None, "digital_code": asset.code}
    return {"digital_email": None, "digital_password": None, "digital_code": None}


def asset_from_columns(
    digital_email: str | None,
    digital_password: str | None,
    digital_code: str | None,
) -> CredentialAsset | CodeAsset | None:
    if digital_code:
        return CodeAsset(code=digital_code)
    if digital_email and digital_password:
        return CredentialAsset(email=digital_email, password=digital_password)
    return None
