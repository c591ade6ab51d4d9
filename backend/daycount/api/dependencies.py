from fastapi import HTTPException, Request

from ..services import CounterServices


def get_services(request: Request) -> CounterServices:
    """从 app.state 取出启动时组合好的服务（不使用模块级全局句柄）。"""
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="SERVICE_NOT_READY")
    return services
