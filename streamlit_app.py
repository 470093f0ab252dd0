import streamlit as st

st.switch_page("pages/01_Menu_Critic.py")
