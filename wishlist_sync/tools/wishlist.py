import logging

from fastmcp import FastMCP

from wishlist_sync.models.enums import MutationState, WishType
from wishlist_sync.server import get_engine, get_notices
from wishlist_sync.sync.notifications import get_user_message

logger = logging.getLogger(__name__)


def _with_notices(text: str) -> str:
    """Append the messages of every notice emitted during this tool call."""
    messages = [get_user_message(notice) for notice in get_notices().drain()]
    if not messages:
        return text
    return "\n".join([text, "", *messages])


def register_wishlist_tools(mcp: FastMCP) -> None:
    """Register wishlist tools on the MCP server."""

    @mcp.tool
    async def load_wishlist(guest_id: str | None = None) -> str:
        """Load a guest's wishlist from the server, or from the offline
        cache when no guest id is given or the server is unreachable.

        Args:
            guest_id: Checked-in guest identifier.

        Returns:
            Summary of the loaded wishlist.
        """
        engine = get_engine()
        from_server = await engine.load(guest_id)
        source = "server" if from_server else "offline cache"
        return _with_notices(f"Loaded {len(engine.items)} wishlist item(s) from {source}.")

    @mcp.tool
    async def manage_wishlist(
        product_id: str,
        action: str = "add",
        look_id: str = "",
        wish_type: str = "individual",
    ) -> str:
        """Add or remove a catalog product from the guest's wishlist.

        Changes show up immediately and are confirmed with the server in
        the background of the call.

        Args:
            product_id: Catalog product identifier.
            action: "add" to wish for the product, "remove" to withdraw.
            look_id: Runway look the wish was made under (optional).
            wish_type: "individual" or "full_look".

        Returns:
            Outcome of the action.
        """
        engine = get_engine()

        if action == "add":
            kind = WishType.parse(wish_type)
            if kind is None:
                return f"Unknown wish type '{wish_type}'. Use 'individual' or 'full_look'."
            result = await engine.add_to_wishlist(product_id, look_id, kind)
            if result.state == MutationState.CONFIRMED and result.item:
                return _with_notices(
                    f"'{product_id}' is on your wishlist (#{result.item.position} in queue)."
                )
            if result.state == MutationState.PENDING_SYNC:
                return _with_notices(f"'{product_id}' is saved locally and waiting to sync.")
            return _with_notices(f"'{product_id}' was not added.")

        if action == "remove":
            result = await engine.remove_from_wishlist(product_id)
            if result.state == MutationState.IDLE:
                return f"'{product_id}' was not on your wishlist."
            if result.state == MutationState.CONFIRMED:
                return _with_notices(f"Removed '{product_id}' from your wishlist.")
            return _with_notices(f"'{product_id}' is still on your wishlist.")

        return f"Unknown action '{action}'. Use 'add' or 'remove'."

    @mcp.tool
    async def my_wishlist() -> str:
        """Show the current wishlist, including changes not yet confirmed.

        Returns:
            Numbered list of wished-for products with queue positions.
        """
        engine = get_engine()
        items = engine.items

        if not items:
            return "Your wishlist is empty."

        lines: list[str] = ["Your wishlist:"]
        for i, item in enumerate(items, 1):
            name = (item.product or {}).get("name") or item.product_id
            line = f"{i}. {name} (#{item.position} in queue)"
            if item.wish_type == WishType.FULL_LOOK:
                line += " [full look]"
            if item.look_id:
                line += f"\n   Look: {item.look_id}"
            if item.pending_sync:
                line += "\n   Waiting to sync"
            elif item.is_provisional:
                line += "\n   Confirming..."
            lines.append(line)

        if engine.is_syncing:
            lines.append("Syncing changes...")
        return "\n".join(lines)

    @mcp.tool
    async def wishlist_position(product_id: str) -> str:
        """Report the guest's queue position for a product.

        Args:
            product_id: Catalog product identifier.

        Returns:
            Queue position, or a note that the product is not wished for.
        """
        engine = get_engine()
        position = engine.get_position(product_id)
        if position is None:
            return f"'{product_id}' is not on your wishlist."
        return f"You're #{position} in queue for '{product_id}'."

    @mcp.tool
    async def sync_wishlist() -> str:
        """Push changes saved while offline, then refresh the wishlist
        from the server.

        Returns:
            Result of the refresh.
        """
        engine = get_engine()
        if not engine.guest_id:
            return "No guest is loaded. Use load_wishlist with a guest id first."
        replayed = await engine.replay_pending_sync()
        synced = await engine.sync_with_server()
        text = (
            f"Wishlist refreshed: {len(engine.items)} item(s)."
            if synced
            else "Could not reach the server; showing the offline copy."
        )
        if replayed:
            text += f" Retried {len(replayed)} offline change(s)."
        return _with_notices(text)
