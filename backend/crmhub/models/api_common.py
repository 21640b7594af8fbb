# crmhub/models/api_common.py

from typing import Annotated

from pydantic import BaseModel, BeforeValidator, Field

# ObjectId do Mongo exposto como string nos modelos
PyObjectId = Annotated[str, BeforeValidator(str)]


class DetailResponse(BaseModel):
    detail: str = Field(..., description="Mensagem detalhada do resultado da operação.")
