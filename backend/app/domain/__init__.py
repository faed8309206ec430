"""
领域层 - 纯函数与值对象

不依赖数据库会话：粒度规则、冲突检测、资源日历、生命周期、
取消政策、余额折叠与等级分级。
"""
