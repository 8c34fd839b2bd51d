"""
Discord 渠道实现模块 - 基于 Discord Gateway WebSocket 协议 + REST API。

本模块直接使用 Discord Gateway WebSocket API 和 REST API，而非高级 SDK（如 discord.py），
保持了极简的依赖。

【核心功能】
1. 通过 WebSocket 连接 Discord Gateway 接收实时消息
2. 自动心跳保活（HEARTBEAT），断线 5 秒后自动重连
3. 从 Gateway 事件维护频道 / 线程缓存（会话回收时按 ID 解析线程）
4. 通过 REST API 发消息、建线程、改名、归档、删除（遇到 429 按 retry_after 等待一次）

【Discord Gateway 协议简述】
- op=10 (HELLO): 服务器下发心跳间隔，客户端开始心跳 + 身份验证
- op=2 (IDENTIFY): 客户端发送 token 进行身份验证
- op=0 (DISPATCH): 服务器推送事件（READY、GUILD_CREATE、THREAD_*、MESSAGE_CREATE 等）
- op=1 (HEARTBEAT): 心跳包
- op=7 (RECONNECT) / op=9 (INVALID SESSION): 需要重连

【Java 开发者类比】
- Gateway 连接类似于 Java-WebSocket 的 WebSocketClient
- 心跳机制类似于 ScheduledExecutorService 定时任务
- REST API 调用类似于 HttpClient 发送请求
"""

import asyncio
import json
from typing import Any

import httpx
import websockets
from loguru import logger

from beluga.bus.events import OutboundMessage
from beluga.bus.queue import MessageBus
from beluga.channels.base import BaseChannel, ChannelError, ChannelInfo, ChannelKind
from beluga.config.schema import DiscordConfig


# Discord 单条消息的最大长度
MAX_MESSAGE_LENGTH = 2000

# 会导致频道缓存更新的 Gateway 事件
CHANNEL_UPSERT_EVENTS = {"CHANNEL_CREATE", "CHANNEL_UPDATE", "THREAD_CREATE", "THREAD_UPDATE"}
CHANNEL_DELETE_EVENTS = {"CHANNEL_DELETE", "THREAD_DELETE"}


def split_message(content: str, limit: int = MAX_MESSAGE_LENGTH) -> list[str]:
    """按 Discord 长度上限切分文本，尽量在换行处断开。"""
    if len(content) <= limit:
        return [content]
    chunks: list[str] = []
    rest = content
    while len(rest) > limit:
        cut = rest.rfind("\n", 0, limit)
        if cut <= 0:
            cut = limit
        chunks.append(rest[:cut])
        rest = rest[cut:].lstrip("\n")
    if rest:
        chunks.append(rest)
    return chunks


class DiscordChannel(BaseChannel):
    """
    Discord 渠道实现 - 基于 Gateway WebSocket 协议。

    属性:
        config: Discord 渠道配置（token、gateway URL、intents 等）
        _ws: WebSocket 连接实例
        _seq: 最新的事件序列号（用于心跳）
        _heartbeat_task: 心跳定时任务
        _http: HTTP 异步客户端（用于 REST API 调用）
    """

    name = "discord"

    def __init__(self, config: DiscordConfig, bus: MessageBus, http: httpx.AsyncClient | None = None):
        """
        初始化 Discord 渠道。

        参数:
            config: Discord 配置（包含 bot token、gateway URL 等）
            bus: 消息总线实例
            http: 可选的 HTTP 客户端（测试时注入 MockTransport）
        """
        super().__init__(config, bus)
        self.config: DiscordConfig = config
        self._ws: Any = None
        self._seq: int | None = None
        self._heartbeat_task: asyncio.Task | None = None
        self._http: httpx.AsyncClient | None = http

    async def start(self) -> None:
        """
        启动 Discord Gateway 连接。

        采用外层无限循环实现断线自动重连：
        连接断开后等待5秒重新连接，直到 _running 被设为 False。
        """
        if not self.config.token:
            logger.error("Discord bot token not configured")
            return

        self._running = True
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=30.0)

        while self._running:
            try:
                logger.info("Connecting to Discord gateway...")
                async with websockets.connect(self.config.gateway_url) as ws:
                    self._ws = ws
                    await self._gateway_loop()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.warning(f"Discord gateway error: {e}")
                if self._running:
                    logger.info("Reconnecting to Discord gateway in 5 seconds...")
                    await asyncio.sleep(5)

    async def stop(self) -> None:
        """按顺序清理：心跳任务 → WebSocket → HTTP 客户端。"""
        self._running = False
        if self._heartbeat_task:
            self._heartbeat_task.cancel()
            self._heartbeat_task = None
        if self._ws:
            await self._ws.close()
            self._ws = None
        if self._http:
            await self._http.aclose()
            self._http = None

    # ------------------------------------------------------------------
    # REST API
    # ------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        payload: dict[str, Any] | None = None,
        reason: str | None = None,
    ) -> httpx.Response:
        """
        发送 REST 请求。

        429（速率限制）按服务器给出的 retry_after 等待后重发一次；
        其他非 2xx 状态或网络异常统一转换为 ChannelError。
        """
        if not self._http:
            raise ChannelError("Discord HTTP client not initialized")

        url = f"{self.config.api_base}{path}"
        headers = {"Authorization": f"Bot {self.config.token}"}
        if reason:
            headers["X-Audit-Log-Reason"] = reason

        try:
            response = await self._http.request(method, url, headers=headers, json=payload)
            if response.status_code == 429:
                retry_after = float(response.json().get("retry_after", 1.0))
                logger.warning(f"Discord rate limited, retrying in {retry_after}s")
                await asyncio.sleep(retry_after)
                response = await self._http.request(method, url, headers=headers, json=payload)
        except (httpx.HTTPError, ValueError) as e:
            raise ChannelError(f"{method} {path} failed: {e}") from e

        if not response.is_success:
            raise ChannelError(f"{method} {path} returned {response.status_code}: {response.text[:200]}")
        return response

    async def send(self, msg: OutboundMessage) -> None:
        """
        通过 Discord REST API 发送消息（超长文本自动分段）。

        参数:
            msg: 出站消息对象，chat_id 为 Discord 频道 ID
        """
        for i, chunk in enumerate(split_message(msg.content)):
            payload: dict[str, Any] = {"content": chunk}
            if msg.reply_to and i == 0:
                payload["message_reference"] = {"message_id": msg.reply_to}
                payload["allowed_mentions"] = {"replied_user": False}
            await self._request("POST", f"/channels/{msg.chat_id}/messages", payload)

    async def create_thread(
        self,
        parent_id: str,
        name: str,
        auto_archive_minutes: int,
        message_id: str | None = None,
    ) -> ChannelInfo:
        payload: dict[str, Any] = {"name": name, "auto_archive_duration": auto_archive_minutes}
        if message_id:
            path = f"/channels/{parent_id}/messages/{message_id}/threads"
        else:
            path = f"/channels/{parent_id}/threads"
            payload["type"] = int(ChannelKind.PUBLIC_THREAD)

        response = await self._request("POST", path, payload)
        try:
            info = ChannelInfo.from_payload(response.json())
        except ValueError as e:
            raise ChannelError(f"Invalid thread payload: {e}") from e
        return self._cache_channel(info)

    async def rename_channel(self, channel_id: str, name: str, reason: str | None = None) -> None:
        await self._request("PATCH", f"/channels/{channel_id}", {"name": name}, reason=reason)
        cached = self._channels.get(channel_id)
        if cached is not None:
            cached.name = name

    async def set_archived(self, channel_id: str, archived: bool, reason: str | None = None) -> None:
        await self._request("PATCH", f"/channels/{channel_id}", {"archived": archived}, reason=reason)
        cached = self._channels.get(channel_id)
        if cached is not None:
            cached.archived = archived

    async def delete_channel(self, channel_id: str, reason: str | None = None) -> None:
        await self._request("DELETE", f"/channels/{channel_id}", reason=reason)
        self._forget_channel(channel_id)

    async def fetch_channel(self, channel_id: str) -> ChannelInfo | None:
        try:
            response = await self._request("GET", f"/channels/{channel_id}")
            return ChannelInfo.from_payload(response.json())
        except (ChannelError, ValueError) as e:
            logger.debug(f"Could not fetch Discord channel {channel_id}: {e}")
            return None

    # ------------------------------------------------------------------
    # Gateway
    # ------------------------------------------------------------------

    async def _gateway_loop(self) -> None:
        """
        Gateway 主消息循环 - 处理来自 Discord 的 WebSocket 消息。

        根据操作码（opcode）分发处理：
        - op=10 (HELLO): 启动心跳 + 发送身份验证
        - op=0 (DISPATCH): 交给 _dispatch_event()
        - op=7 / op=9: 退出循环触发重连
        """
        if not self._ws:
            return

        async for raw in self._ws:
            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning(f"Invalid JSON from Discord gateway: {raw[:100]}")
                continue

            op = data.get("op")
            seq = data.get("s")
            payload = data.get("d")

            if seq is not None:
                self._seq = seq

            if op == 10:
                interval_ms = payload.get("heartbeat_interval", 45000)
                await self._start_heartbeat(interval_ms / 1000)
                await self._identify()
            elif op == 0:
                await self._dispatch_event(data.get("t"), payload or {})
            elif op == 7:
                logger.info("Discord gateway requested reconnect")
                break
            elif op == 9:
                logger.warning("Discord gateway invalid session")
                break

    async def _identify(self) -> None:
        """发送 IDENTIFY 消息进行身份验证。"""
        if not self._ws:
            return

        identify = {
            "op": 2,
            "d": {
                "token": self.config.token,
                "intents": self.config.intents,
                "properties": {
                    "os": "beluga",
                    "browser": "beluga",
                    "device": "beluga",
                },
            },
        }
        await self._ws.send(json.dumps(identify))

    async def _start_heartbeat(self, interval_s: float) -> None:
        """启动或重启心跳循环。"""
        if self._heartbeat_task:
            self._heartbeat_task.cancel()

        async def heartbeat_loop() -> None:
            while self._running and self._ws:
                payload = {"op": 1, "d": self._seq}
                try:
                    await self._ws.send(json.dumps(payload))
                except Exception as e:
                    logger.warning(f"Discord heartbeat failed: {e}")
                    break
                await asyncio.sleep(interval_s)

        self._heartbeat_task = asyncio.create_task(heartbeat_loop())

    async def _dispatch_event(self, event_type: str | None, payload: dict[str, Any]) -> None:
        """
        处理 op=0 的 DISPATCH 事件。

        - READY: 记录机器人自身用户 ID
        - GUILD_CREATE / THREAD_LIST_SYNC: 批量写入频道与线程缓存
        - CHANNEL_* / THREAD_*: 增量更新缓存
        - MESSAGE_CREATE: 转发到消息总线
        """
        if event_type == "READY":
            self.user_id = str((payload.get("user") or {}).get("id", "")) or None
            logger.info(f"Discord gateway READY as {self.user_id}")
        elif event_type in ("GUILD_CREATE", "THREAD_LIST_SYNC"):
            guild_id = payload.get("guild_id") or payload.get("id")
            for item in (payload.get("channels") or []) + (payload.get("threads") or []):
                item.setdefault("guild_id", guild_id)
                self._cache_channel(ChannelInfo.from_payload(item))
        elif event_type in CHANNEL_UPSERT_EVENTS:
            self._cache_channel(ChannelInfo.from_payload(payload))
        elif event_type in CHANNEL_DELETE_EVENTS:
            self._forget_channel(str(payload.get("id", "")))
        elif event_type == "MESSAGE_CREATE":
            await self._handle_message_create(payload)

    async def _handle_message_create(self, payload: dict[str, Any]) -> None:
        """
        处理 MESSAGE_CREATE 事件（收到新消息）。

        1. 过滤机器人消息（防止自我响应）
        2. 提取文本内容与元数据
        3. 交给 _handle_message() 做白名单检查并转发到消息总线
        """
        author = payload.get("author") or {}
        if author.get("bot"):
            return

        sender_id = str(author.get("id", ""))
        channel_id = str(payload.get("channel_id", ""))
        if not sender_id or not channel_id:
            return

        await self._handle_message(
            sender_id=sender_id,
            chat_id=channel_id,
            content=payload.get("content") or "",
            metadata={
                "message_id": str(payload.get("id", "")),
                "guild_id": payload.get("guild_id"),
            },
        )
