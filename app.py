import logging
import streamlit as st
from kety.ui.analysis import render_analysis

logging.basicConfig(level=logging.INFO)

# Page Config
st.set_page_config(page_title="Kety-Schmidt CBF", layout="wide")

def main():
    st.title("Kety-Schmidt Cerebral Blood Flow")
    render_analysis()

if __name__ == "__main__":
    main()
