"""Streamlit front end for the school portal."""
from datetime import datetime, time, timezone

import requests
import streamlit as st

from portal.client.gateway import DataGateway
from portal.client.session import FileTokenStore, MemoryTokenStore, SessionManager
from portal.client.views import Affordance, Level, Page, Partition, ViewController
from portal.core.config import settings
from portal.core.policy import ResourceKind
from portal.domain.school import AnnouncementScope, MediaKind
from portal.domain.user import Role

# ---------------------------
# CONFIG
# ---------------------------
st.set_page_config(page_title="School Portal", page_icon="🏫", layout="wide")

PAGE_LABELS = {
    Page.HOME: "🏠 Home",
    Page.ANNOUNCEMENTS: "📢 Announcements",
    Page.CLASSES: "🏫 Classes",
    Page.ASSIGNMENTS: "📝 Assignments",
    Page.EVENTS: "📅 Events",
    Page.MEDIA: "🖼️ Gallery",
    Page.ADMIN: "🛠️ Admin",
    Page.SETTINGS: "⚙️ Settings",
}


def build_controller() -> ViewController:
    """Construct session, gateway and controller once per browser session."""
    token_store = FileTokenStore(settings.token_file) if settings.token_file else MemoryTokenStore()
    session = SessionManager(
        requests.Session(),
        settings.api_base_url,
        token_store=token_store,
        api_prefix=settings.api_prefix,
        timeout=settings.request_timeout,
    )
    controller = ViewController(session, DataGateway(session))
    controller.restore()
    return controller


if "controller" not in st.session_state:
    st.session_state.controller = build_controller()

controller: ViewController = st.session_state.controller


# ---------------------------
# HELPER FUNCTIONS
# ---------------------------
def show_notifications():
    for note in controller.drain_notifications():
        if note.level is Level.ERROR:
            st.error(note.message)
        elif note.level is Level.WARNING:
            st.warning(note.message)
        elif note.level is Level.SUCCESS:
            st.success(note.message)
        else:
            st.info(note.message)


def to_datetime(day, at=time(9, 0)) -> datetime:
    return datetime.combine(day, at).replace(tzinfo=timezone.utc)


def class_names(classes) -> dict:
    return {c.id: c.name for c in classes}


def delete_button(kind: ResourceKind, resource_id: str):
    if st.button("🗑️ Delete", key=f"del-{kind.value}-{resource_id}"):
        controller.delete(kind, resource_id)
        st.rerun()


# ---------------------------
# SIDEBAR
# ---------------------------
view = controller.state()

with st.sidebar:
    st.header("🏫 School Portal")

    pages = [p for p in Page if p is not Page.ADMIN or view.can(Affordance.ADMIN_LINK)]
    if not view.can(Affordance.SETTINGS_LINK):
        pages.remove(Page.SETTINGS)
    selected = st.radio(
        "Navigate", pages, index=pages.index(view.page) if view.page in pages else 0,
        format_func=PAGE_LABELS.get,
    )
    if selected is not view.page:
        view = controller.show_page(selected)

    st.markdown("---")

    if view.can(Affordance.LOGOUT):
        st.markdown(f"Signed in as **{view.user_name}** ({view.partition.value})")
        if st.button("Log out"):
            controller.logout()
            st.rerun()
    else:
        with st.form("login"):
            st.markdown("**🔑 Log in**")
            email = st.text_input("Email")
            password = st.text_input("Password", type="password")
            if st.form_submit_button("Log in"):
                controller.login(email, password)
                st.rerun()
        with st.expander("Create an account"):
            with st.form("register"):
                name = st.text_input("Name")
                reg_email = st.text_input("Email", key="reg_email")
                reg_password = st.text_input("Password", type="password", key="reg_password")
                role = st.selectbox("Role", [Role.STUDENT, Role.TEACHER], format_func=lambda r: r.value)
                if st.form_submit_button("Register"):
                    controller.register(name, reg_email, reg_password, role)
                    st.rerun()

show_notifications()
content = view.content


# ---------------------------
# PAGES
# ---------------------------
def render_home():
    st.title("🏫 Welcome to the School Portal")
    left, right = st.columns(2)
    with left:
        st.subheader("📢 Latest announcements")
        for a in content.get("announcements", []):
            st.markdown(f"**{a.title}**  \n{a.content}")
    with right:
        st.subheader("📅 Events")
        for e in content.get("events", []):
            st.markdown(f"**{e.title}** ({e.date:%Y-%m-%d})  \n{e.description}")


def render_announcements():
    st.title("📢 Announcements")
    classes = content.get("classes", [])
    if view.can(Affordance.ADD_ANNOUNCEMENT):
        with st.expander("➕ New announcement"):
            with st.form("announcement"):
                title = st.text_input("Title")
                body = st.text_area("Content")
                names = class_names(classes)
                target = st.selectbox("Audience", [None, *names], format_func=lambda c: names.get(c, "Everyone"))
                if st.form_submit_button("Publish"):
                    scope = AnnouncementScope.CLASS if target else AnnouncementScope.GLOBAL
                    controller.add_announcement(title, body, scope, target)
                    st.rerun()

    for a in content.get("announcements", []):
        with st.container(border=True):
            st.markdown(f"### {a.title}")
            st.caption(f"{a.created_at:%Y-%m-%d %H:%M} · {a.scope.value}")
            st.write(a.content)
            if view.can(Affordance.DELETE_ANNOUNCEMENT):
                delete_button(ResourceKind.ANNOUNCEMENT, a.id)


def render_classes():
    st.title("🏫 Classes")
    students = content.get("students", [])
    student_names = {s.id: s.name for s in students}

    if view.can(Affordance.ADD_CLASS):
        with st.form("class"):
            name = st.text_input("New class name")
            if st.form_submit_button("Create class"):
                controller.add_class(name)
                st.rerun()

    for group in content.get("classes", []):
        with st.container(border=True):
            st.markdown(f"### {group.name}")
            st.caption(f"{len(group.students)} students · {len(group.teachers)} teachers")
            if view.can(Affordance.MANAGE_STUDENTS):
                for sid in group.students:
                    cols = st.columns([4, 1])
                    cols[0].write(student_names.get(sid, sid))
                    if cols[1].button("Remove", key=f"rm-{group.id}-{sid}"):
                        controller.remove_student(group.id, sid)
                        st.rerun()
                candidates = [s for s in students if s.id not in group.students]
                if candidates:
                    pick = st.selectbox(
                        "Add student", candidates, key=f"pick-{group.id}", format_func=lambda s: s.name,
                    )
                    if st.button("Add", key=f"add-{group.id}"):
                        controller.assign_student(group.id, pick.id)
                        st.rerun()
            if view.can(Affordance.DELETE_CLASS):
                delete_button(ResourceKind.CLASS, group.id)


def render_submissions(assignment):
    opened = content.get("submissions") or {}
    if opened.get("assignment_id") != assignment.id:
        if st.button("📂 View submissions", key=f"subs-{assignment.id}"):
            controller.open_submissions(assignment.id)
            st.rerun()
        return

    items = opened.get("items", [])
    if not items:
        st.info("No submissions yet.")
    for sub in items:
        grade = "not graded" if sub.grade is None else f"{sub.grade:g}/100"
        st.markdown(f"**{sub.student}** · {sub.submitted_at:%Y-%m-%d %H:%M} · {grade}")
        if sub.text:
            st.write(sub.text)
        if sub.file_url:
            st.markdown(f"[📎 Attachment]({settings.api_base_url}{sub.file_url})")
        if view.can(Affordance.GRADE_SUBMISSION):
            value = st.number_input("Grade", 0.0, 100.0, float(sub.grade or 0), key=f"g-{sub.id}")
            if st.button("Save grade", key=f"save-{sub.id}"):
                controller.grade_submission(assignment.id, sub.id, value)
                st.rerun()
    if st.button("Close", key=f"close-{assignment.id}"):
        controller.close_submissions()
        st.rerun()


def render_assignments():
    st.title("📝 Assignments")
    classes = content.get("classes", [])
    names = class_names(classes)

    if view.can(Affordance.ADD_ASSIGNMENT) and classes:
        with st.expander("➕ New assignment"):
            with st.form("assignment"):
                title = st.text_input("Title")
                description = st.text_area("Description")
                class_id = st.selectbox("Class", list(names), format_func=names.get)
                due = st.date_input("Due date")
                if st.form_submit_button("Create"):
                    controller.add_assignment(title, description, class_id, to_datetime(due, time(23, 59)))
                    st.rerun()

    for assignment in content.get("assignments", []):
        with st.container(border=True):
            st.markdown(f"### {assignment.title}")
            st.caption(f"Due {assignment.due_date:%Y-%m-%d} · {names.get(assignment.class_id, '')}")
            st.write(assignment.description)

            if view.partition is Partition.STUDENT:
                mine = assignment.submissions
                if mine:
                    last = mine[-1]
                    grade = "awaiting grade" if last.grade is None else f"grade {last.grade:g}/100"
                    st.success(f"Submitted {last.submitted_at:%Y-%m-%d} ({grade})")
                with st.form(f"submit-{assignment.id}"):
                    text = st.text_area("Your answer")
                    upload = st.file_uploader("Attachment", key=f"file-{assignment.id}")
                    if st.form_submit_button("Submit"):
                        file = (upload.name, upload.getvalue()) if upload else None
                        controller.submit_assignment(assignment.id, text=text or None, file=file)
                        st.rerun()

            if view.can(Affordance.VIEW_SUBMISSIONS):
                render_submissions(assignment)
            if view.can(Affordance.DELETE_ASSIGNMENT):
                delete_button(ResourceKind.ASSIGNMENT, assignment.id)


def render_events():
    st.title("📅 Events")
    if view.can(Affordance.ADD_EVENT):
        with st.expander("➕ New event"):
            with st.form("event"):
                title = st.text_input("Title")
                description = st.text_area("Description")
                day = st.date_input("Date")
                if st.form_submit_button("Add event"):
                    controller.add_event(title, description, to_datetime(day))
                    st.rerun()

    for e in content.get("events", []):
        with st.container(border=True):
            st.markdown(f"### {e.title}")
            st.caption(f"{e.date:%Y-%m-%d}")
            st.write(e.description)
            if view.can(Affordance.DELETE_EVENT):
                delete_button(ResourceKind.EVENT, e.id)


def render_media():
    st.title("🖼️ Gallery")
    if view.can(Affordance.ADD_MEDIA):
        with st.expander("➕ Add media"):
            with st.form("media"):
                title = st.text_input("Title", value="Untitled")
                upload = st.file_uploader("Upload a file") if view.can(Affordance.UPLOAD_FILE) else None
                url = st.text_input("…or link to a URL")
                kind = st.selectbox("Kind", list(MediaKind), index=2, format_func=lambda k: k.value)
                if st.form_submit_button("Add"):
                    file = (upload.name, upload.getvalue()) if upload else None
                    controller.add_media(title, url=url or None, kind=kind, file=file)
                    st.rerun()

    for item in content.get("media", []):
        with st.container(border=True):
            st.markdown(f"**{item.title}**")
            link = item.url if item.url.startswith("http") else f"{settings.api_base_url}{item.url}"
            if item.kind is MediaKind.IMAGE:
                st.image(link)
            elif item.kind is MediaKind.VIDEO:
                st.video(link)
            else:
                st.markdown(f"[📎 Download]({link})")
            if view.can(Affordance.DELETE_MEDIA):
                delete_button(ResourceKind.MEDIA, item.id)


def render_admin():
    st.title("🛠️ Administration")
    with st.expander("➕ New user"):
        with st.form("user"):
            name = st.text_input("Name")
            email = st.text_input("Email")
            password = st.text_input("Password", type="password")
            role = st.selectbox("Role", list(Role), format_func=lambda r: r.value)
            if st.form_submit_button("Create user"):
                controller.add_user(name, email, password, role)
                st.rerun()

    for user in content.get("users", []):
        cols = st.columns([3, 3, 2, 1])
        cols[0].write(user.name)
        cols[1].write(user.email)
        new_role = cols[2].selectbox(
            "Role", list(Role), index=list(Role).index(user.role),
            key=f"role-{user.id}", format_func=lambda r: r.value, label_visibility="collapsed",
        )
        if new_role is not user.role:
            controller.edit_user(user.id, role=new_role)
            st.rerun()
        with cols[3]:
            delete_button(ResourceKind.USER, user.id)


def render_settings():
    st.title("⚙️ Settings")
    with st.form("password"):
        current = st.text_input("Current password", type="password")
        new = st.text_input("New password", type="password")
        confirm = st.text_input("Confirm new password", type="password")
        if st.form_submit_button("Change password"):
            if new != confirm:
                st.error("Passwords do not match")
            else:
                controller.change_password(current, new)
                st.rerun()


RENDERERS = {
    Page.HOME: render_home,
    Page.ANNOUNCEMENTS: render_announcements,
    Page.CLASSES: render_classes,
    Page.ASSIGNMENTS: render_assignments,
    Page.EVENTS: render_events,
    Page.MEDIA: render_media,
    Page.ADMIN: render_admin,
    Page.SETTINGS: render_settings,
}

if view.restricted:
    if view.partition is Partition.GUEST:
        st.info("🔒 Please log in to see this page.")
    else:
        st.warning("Access denied.")
else:
    RENDERERS[view.page]()
