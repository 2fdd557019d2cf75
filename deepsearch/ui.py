# Run from project root: streamlit run deepsearch/ui.py
# UI talks to backend API (GET /api/chats, GET /api/chats/{id}, POST /api/chat for SSE). Chats are stored on the server.

import json
import os
import uuid

import requests
import streamlit as st

# Backend config
API_BASE = os.environ.get("API_BASE", "http://localhost:8000")

st.title("Deepsearch")

# Session token (from scripts/create_user.py); without one the chat input asks to sign in
if "token" not in st.session_state:
    st.session_state.token = os.environ.get("DEEPSEARCH_TOKEN", "")
with st.sidebar:
    st.session_state.token = st.text_input("Session token", value=st.session_state.token, type="password")


def _headers() -> dict:
    return {"Authorization": f"Bearer {st.session_state.token}"} if st.session_state.token else {}


def _render_parts(parts: list) -> None:
    for part in parts or []:
        if part.get("type") == "text":
            st.markdown(part.get("text", ""))
        elif part.get("type") == "tool-invocation":
            inv = part.get("toolInvocation") or {}
            with st.expander(f"{inv.get('toolName', 'tool')}: {(inv.get('args') or {}).get('query', '')}"):
                st.json(inv.get("result"))


# Current chat comes from ?id=... so a reload resumes it
chat_id = st.query_params.get("id")
if st.session_state.get("loaded_chat") != chat_id:
    st.session_state.messages = []
    st.session_state.loaded_chat = chat_id
    if chat_id and st.session_state.token:
        try:
            r = requests.get(f"{API_BASE}/api/chats/{chat_id}", headers=_headers(), timeout=10)
            if r.ok:
                st.session_state.messages = r.json().get("messages") or []
            else:
                st.caption(f"Could not load chat: {r.status_code}")
        except requests.RequestException:
            st.caption("Backend not reachable. Start the API first.")

# Chat list
with st.sidebar:
    if st.button("New chat", key="new_chat"):
        st.query_params.clear()
        st.rerun()
    if st.session_state.token:
        try:
            r = requests.get(f"{API_BASE}/api/chats", headers=_headers(), timeout=10)
            chats = r.json() if r.ok else []
        except requests.RequestException:
            chats = []
        for chat in chats:
            label = chat.get("title") or "Untitled"
            if st.button(label[:40], key=f"chat_{chat['id']}"):
                st.query_params["id"] = chat["id"]
                st.rerun()

# Show previous messages
for msg in st.session_state.messages:
    with st.chat_message(msg["role"]):
        _render_parts(msg.get("parts") or [{"type": "text", "text": msg.get("content", "")}])

if prompt := st.chat_input("Say something..."):
    if not st.session_state.token:
        st.warning("Sign in first: paste a session token in the sidebar.")
        st.stop()

    is_new_chat = chat_id is None
    current_id = chat_id or str(uuid.uuid4())
    user_msg = {"id": uuid.uuid4().hex, "role": "user", "content": prompt, "parts": [{"type": "text", "text": prompt}]}
    st.session_state.messages.append(user_msg)
    with st.chat_message("user"):
        st.markdown(prompt)

    with st.chat_message("assistant"):
        thinking_placeholder = st.empty()
        thinking_placeholder.caption("Thinking...")
        answer_placeholder = st.empty()
        tools_caption = st.empty()
        accumulated: list[str] = []
        searches: list[str] = []
        reply = None
        try:
            r = requests.post(
                f"{API_BASE}/api/chat",
                json={"messages": st.session_state.messages, "chatId": current_id, "isNewChat": is_new_chat},
                headers=_headers(),
                stream=True,
                timeout=120,
            )
            if not r.ok:
                thinking_placeholder.empty()
                answer_placeholder.error(f"Error: {r.status_code}: {r.text[:200]}")
            else:
                current_event = None
                for line in r.iter_lines(decode_unicode=True):
                    if not line:
                        continue
                    if line.startswith("event:"):
                        current_event = line[6:].strip()
                        continue
                    if not line.startswith("data:") or not current_event:
                        continue
                    try:
                        data = json.loads(line[5:].strip())
                    except json.JSONDecodeError:
                        data = {}
                    if current_event == "new_chat_created":
                        current_id = data.get("chatId", current_id)
                    elif current_event == "text_delta":
                        accumulated.append(data.get("content", ""))
                        thinking_placeholder.empty()
                        answer_placeholder.markdown("".join(accumulated))
                    elif current_event == "tool_call":
                        searches.append((data.get("arguments") or {}).get("query", ""))
                        tools_caption.caption(f"Searching: {', '.join(searches)}")
                    elif current_event == "done":
                        reply = data.get("message")
                        thinking_placeholder.empty()
                    elif current_event == "error":
                        thinking_placeholder.empty()
                        answer_placeholder.error(data.get("message", "An error occurred."))
        except requests.RequestException as e:
            thinking_placeholder.empty()
            answer_placeholder.error(f"Connection failed: {e}")

    if reply:
        st.session_state.messages.append(reply)
    if is_new_chat and reply:
        # Keep the loaded messages when the query param switches to the new chat
        st.session_state.loaded_chat = current_id
        st.query_params["id"] = current_id
        st.rerun()
