"""
Built-in viewer page for the Chronoscribe dashboard.

A single self-contained HTML page that connects to the relay as a viewer and
renders the unified timeline with per-source colors.
"""

from .config import config


def get_viewer_html(ws_port: int = None) -> str:
    """
    Generate the HTML content for the log viewer.

    Args:
        ws_port: Relay port on the page's host (defaults to the configured port)

    Returns:
        str: Complete HTML content for the log viewer
    """
    return f"""
    <!DOCTYPE html>
    <html lang="en">
    <head>
        <meta charset="UTF-8">
        <meta name="viewport" content="width=device-width, initial-scale=1.0">
        <title>Chronoscribe</title>
        <style>
            {_get_css_styles()}
        </style>
    </head>
    <body>
        <div class="header">
            <h1>Chronoscribe</h1>
            <div class="status disconnected" id="status">Connecting...</div>
        </div>

        <div class="sources" id="sources"></div>

        <div class="log-container" id="log-container">
            <div class="log-entry"><span class="timestamp">Waiting for logs...</span></div>
        </div>

        <script>
            {_get_javascript_code(ws_port or config.server.port)}
        </script>
    </body>
    </html>
    """


def _get_css_styles() -> str:
    """Get the CSS styles for the log viewer."""
    return """
        body {
            font-family: 'Courier New', monospace;
            background-color: #111827;
            color: #e5e7eb;
            margin: 0;
            padding: 20px;
        }

        .header {
            display: flex;
            justify-content: space-between;
            align-items: center;
            margin-bottom: 10px;
        }

        .status.connected { color: #34D399; }
        .status.disconnected { color: #F87171; }

        .sources {
            display: flex;
            gap: 8px;
            flex-wrap: wrap;
            margin-bottom: 10px;
        }

        .badge {
            border: 1px solid;
            border-radius: 3px;
            padding: 2px 8px;
        }

        .badge.offline { opacity: 0.4; }

        .log-container {
            border: 1px solid #374151;
            border-radius: 5px;
            height: 80vh;
            overflow-y: auto;
            padding: 10px;
            font-size: 12px;
            line-height: 1.4;
        }

        .log-entry { padding: 1px 5px; word-wrap: break-word; }
        .timestamp { color: #6b7280; font-size: 10px; }
        .source { font-weight: bold; margin: 0 5px; }
        .level { font-weight: bold; margin: 0 5px; }
        .level.DEBUG { color: #9ca3af; }
        .level.INFO { color: #60A5FA; }
        .level.WARN { color: #FBBF24; }
        .level.ERROR { color: #F87171; }
    """


def _get_javascript_code(ws_port: int) -> str:
    """Get the JavaScript code for the log viewer."""
    return f"""
        const MAX_LOGS = 10000;
        const wsProtocol = window.location.protocol === 'https:' ? 'wss:' : 'ws:';
        const wsUrl = `${{wsProtocol}}//${{window.location.hostname}}:{ws_port}`;
        let logs = [];
        let sources = {{}};

        function connectWebSocket() {{
            const websocket = new WebSocket(wsUrl);

            websocket.onopen = () => updateStatus('Connected', true);

            websocket.onmessage = (event) => {{
                const message = JSON.parse(event.data);
                handleMessage(message.type, message.payload);
            }};

            websocket.onclose = () => {{
                updateStatus('Disconnected', false);
                setTimeout(connectWebSocket, 3000);
            }};
        }}

        function handleMessage(type, payload) {{
            switch (type) {{
                case 'SOURCES_LIST':
                    sources = {{}};
                    payload.sources.forEach(s => sources[s.name] = s);
                    renderSources();
                    break;
                case 'SOURCE_CONNECTED':
                    sources[payload.source.name] = payload.source;
                    renderSources();
                    break;
                case 'SOURCE_DISCONNECTED':
                    if (sources[payload.sourceName]) {{
                        sources[payload.sourceName].connected = false;
                    }}
                    renderSources();
                    break;
                case 'LOGS_BATCH':
                    logs = payload.records.slice(-MAX_LOGS);
                    renderLogs();
                    break;
                case 'LOG_BROADCAST':
                    logs.push(payload.record);
                    if (logs.length > MAX_LOGS) {{
                        logs.shift();
                    }}
                    renderLogs();
                    break;
            }}
        }}

        function updateStatus(text, connected) {{
            const statusEl = document.getElementById('status');
            statusEl.textContent = text;
            statusEl.className = `status ${{connected ? 'connected' : 'disconnected'}}`;
        }}

        function safeColor(color) {{
            return /^(#[0-9a-fA-F]{{3}}|#[0-9a-fA-F]{{6}}|[a-zA-Z]+)$/.test(color || '') ? color : '#e5e7eb';
        }}

        function colorOf(name) {{
            return sources[name] ? safeColor(sources[name].color) : '#e5e7eb';
        }}

        function renderSources() {{
            document.getElementById('sources').innerHTML = Object.values(sources).map(s =>
                `<span class="badge ${{s.connected ? '' : 'offline'}}" style="color: ${{safeColor(s.color)}}; border-color: ${{safeColor(s.color)}}">${{escapeHtml(s.name)}}</span>`
            ).join('');
        }}

        function renderLogs() {{
            const container = document.getElementById('log-container');
            container.innerHTML = logs.map(log => `
                <div class="log-entry" style="border-left: 3px solid ${{colorOf(log.sourceName)}}">
                    <span class="timestamp">${{log.receivedAt}}</span>
                    <span class="source" style="color: ${{colorOf(log.sourceName)}}">[${{escapeHtml(log.sourceName)}}]</span>
                    <span class="level ${{log.level}}">${{log.level}}</span>
                    <span class="message">${{escapeHtml(log.content)}}</span>
                </div>
            `).join('');
            container.scrollTop = container.scrollHeight;
        }}

        function escapeHtml(text) {{
            const div = document.createElement('div');
            div.textContent = text;
            return div.innerHTML;
        }}

        connectWebSocket();
    """
