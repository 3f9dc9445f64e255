from flask import Flask, jsonify, request
import logging
from typing import Any, Dict, Optional

import pos_config as cfg
import pos_totals as pt
from notifications import NotificationChannel
from pos_cart import Cart
from receipt_formatter import format_receipt, render_receipt_text
from sync_client import BackendClient, SyncError
from sync_service import SyncReconciliationService

app = Flask(__name__)

app.logger.setLevel(cfg.log_level())
logging.getLogger('werkzeug').setLevel(cfg.log_level())

# Terminal-wide state: one cart, one notification stack, one sync snapshot.
CHANNEL = NotificationChannel()
CLIENT = BackendClient()
SYNC = SyncReconciliationService(CLIENT, CHANNEL)
CART = Cart(cfg.TAX_RATE)


def _error(message: str, status: int):
    return jsonify({'status': 'error', 'message': message}), status


def _snapshot_view(snapshot: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if snapshot is None:
        return None
    rows = []
    for row in snapshot['sales']:
        view = dict(row)
        view['total'] = pt.format_money(row['total'])
        view['retrying'] = SYNC.is_retrying(row['sale_id'])
        rows.append(view)
    return {'summary': snapshot['summary'], 'sales': rows}


# Disable caching so the till never shows a stale cart or sync status
@app.after_request
def add_no_cache_headers(response):
    response.headers['Cache-Control'] = 'no-store, no-cache, must-revalidate, max-age=0'
    response.headers['Pragma'] = 'no-cache'
    if 'Expires' in response.headers:
        del response.headers['Expires']
    response.headers['X-Content-Type-Options'] = 'nosniff'
    return response


@app.route('/health')
def health():
    return jsonify({'status': 'ok'})


@app.route('/api/cart')
def api_cart():
    return jsonify({'status': 'success', 'cart': CART.snapshot()})


@app.route('/api/cart/items', methods=['POST'])
def api_cart_add():
    """Add a product line; adding the same product and unit again bumps its quantity."""
    data = request.get_json(silent=True) or {}
    try:
        line = CART.add_item(
            data.get('product_id'),
            data.get('name') or '',
            data.get('unit_price'),
            data.get('quantity', 1),
            data.get('unit_of_measure'),
        )
    except ValueError as exc:
        return _error(str(exc), 400)
    app.logger.info("Cart add %s (qty now %s)", line['product_id'], line['quantity'])
    return jsonify({'status': 'success', 'cart': CART.snapshot()})


@app.route('/api/cart/items/<product_id>', methods=['PUT'])
def api_cart_update(product_id: str):
    data = request.get_json(silent=True) or {}
    if 'quantity' not in data:
        return _error('Missing quantity', 400)
    line = CART.update_quantity(product_id, data.get('quantity'), data.get('unit_of_measure'))
    if line is None:
        return _error('Item not in cart', 404)
    return jsonify({'status': 'success', 'cart': CART.snapshot()})


@app.route('/api/cart/items/<product_id>', methods=['DELETE'])
def api_cart_remove(product_id: str):
    if not CART.remove_item(product_id, request.args.get('unit_of_measure')):
        return _error('Item not in cart', 404)
    return jsonify({'status': 'success', 'cart': CART.snapshot()})


@app.route('/api/cart', methods=['DELETE'])
def api_cart_clear():
    CART.clear()
    return jsonify({'status': 'success', 'cart': CART.snapshot()})


@app.route('/api/cart/customer', methods=['POST'])
def api_cart_customer():
    """Select the customer; ``tax_preference`` is the one resolved from their price list."""
    data = request.get_json(silent=True) or {}
    customer = data.get('customer')
    if not isinstance(customer, dict):
        return _error('Missing customer', 400)
    CART.select_customer(customer, data.get('tax_preference'))
    return jsonify({'status': 'success', 'cart': CART.snapshot()})


@app.route('/api/cart/customer', methods=['DELETE'])
def api_cart_customer_clear():
    CART.select_customer(None)
    return jsonify({'status': 'success', 'cart': CART.snapshot()})


@app.route('/api/cart/checkout', methods=['POST'])
def api_checkout():
    """Create the sale on the backend, render its receipt, then empty the cart.

    Payment itself is settled before this call; ``payment`` only records how.
    The cart is left untouched when the backend rejects the sale.
    """
    data = request.get_json(silent=True) or {}
    try:
        payload = CART.to_sale_payload(data.get('payment') or {})
    except ValueError as exc:
        return _error(str(exc), 400)
    try:
        sale = CLIENT.create_sale(payload)
    except SyncError as exc:
        app.logger.warning("Checkout failed: %s", exc)
        CHANNEL.error(str(exc))
        return _error(str(exc), 502)
    CART.clear()
    receipt = format_receipt(sale, cfg.STORE_NAME)
    app.logger.info("Sale %s completed (%s)", receipt.get('receipt_number'), receipt.get('total'))
    CHANNEL.success(f"Sale completed: {receipt.get('receipt_number')}")
    ledger = receipt.get('ledger')
    if ledger and ledger['status'] == 'failed':
        CHANNEL.warning(f"Sale saved but not synced to Zoho: {ledger['detail']}")
    return jsonify({
        'status': 'success',
        'sale': sale,
        'receipt': receipt,
        'receipt_text': render_receipt_text(receipt),
    })


@app.route('/api/receipts/preview', methods=['POST'])
def api_receipt_preview():
    """Format any stored sale record the way the receipt screen shows it."""
    data = request.get_json(silent=True) or {}
    receipt = format_receipt(data.get('sale'), data.get('store_name') or cfg.STORE_NAME)
    return jsonify({'status': 'success', 'receipt': receipt, 'receipt_text': render_receipt_text(receipt)})


@app.route('/api/sync/status')
def api_sync_status():
    """Return the ledger sync snapshot. ``refresh=1`` forces a new fetch."""
    refresh = (request.args.get('refresh') or '').strip().lower() in ('1', 'true', 'yes')
    try:
        limit = int(request.args.get('limit') or SYNC.limit)
    except ValueError:
        return _error('Invalid limit', 400)
    snapshot = SYNC.snapshot
    if refresh or snapshot is None:
        snapshot = SYNC.fetch_sync_status(limit, no_cache=refresh) or SYNC.snapshot
    if snapshot is None:
        return _error('Failed to load sync status', 502)
    return jsonify({'status': 'success', 'sync': _snapshot_view(snapshot)})


@app.route('/api/sync/<int:sale_id>/retry', methods=['POST'])
def api_sync_retry(sale_id: int):
    row = SYNC.find_sale(sale_id)
    if row is None or not row['can_retry']:
        return _error(f'Retry not available for sale #{sale_id}', 409)
    if SYNC.is_retrying(sale_id):
        return _error(f'Sale #{sale_id} is already syncing', 409)
    result = SYNC.retry_sync(sale_id)
    if result is None:
        return _error('Sync retry failed', 502)
    return jsonify({
        'status': 'success',
        'receipt_number': result['receipt_number'],
        'sync': _snapshot_view(SYNC.snapshot),
    })


@app.route('/api/notifications')
def api_notifications():
    return jsonify({'status': 'success', 'notifications': CHANNEL.active()})


@app.route('/api/notifications/<int:note_id>', methods=['DELETE'])
def api_notification_close(note_id: int):
    if not CHANNEL.dismiss(note_id):
        return _error('Notification not found', 404)
    return jsonify({'status': 'success'})
