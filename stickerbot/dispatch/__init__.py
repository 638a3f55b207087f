"""分发管线：上下文、路由、中间件与 Dispatcher。

子模块之间存在引用（scenes 依赖 context/router），此处不做聚合导入。
"""
