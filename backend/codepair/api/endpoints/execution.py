from fastapi import APIRouter

from codepair.api.deps import Executor
from codepair.schemas.execution import ExecutionRequest, ExecutionResponse

router = APIRouter(prefix="/execute", tags=["execution"])


@router.post("", response_model=ExecutionResponse)
async def execute_code(payload: ExecutionRequest, executor: Executor) -> ExecutionResponse:
    output = await executor.execute(payload.code, payload.language)
    return ExecutionResponse(language=payload.language, output=output)
